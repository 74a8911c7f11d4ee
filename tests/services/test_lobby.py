"""Unit tests for src/services/lobby.py"""

import pytest

from src.core.models import ChallengeModel, MatchModel
from src.core.shared_types import Collection
from src.engine.match import Match
from src.services.challenge_negotiator import ChallengeNegotiator
from src.services.lobby import LobbyService
from src.services.match_service import MatchService
from src.services.series_coordinator import SeriesCoordinator
from src.store.memory_store import InMemoryRecordStore


@pytest.fixture
def lobby(memory_store: InMemoryRecordStore) -> LobbyService:
    return LobbyService(memory_store)


@pytest.fixture
def negotiator(memory_store: InMemoryRecordStore, match_service: MatchService) -> ChallengeNegotiator:
    return ChallengeNegotiator(memory_store, match_service, SeriesCoordinator(memory_store, match_service))


def test_incoming_challenges(lobby: LobbyService, negotiator: ChallengeNegotiator) -> None:
    pending = negotiator.send("alice", "Alice", "bob", "Bob")
    answered = negotiator.send("carol", "Carol", "bob", "Bob")
    negotiator.respond(answered, "bob", accept=False)
    negotiator.send("bob", "Bob", "alice", "Alice")

    assert [challenge.id for challenge in lobby.incoming_challenges("bob")] == [pending]


def test_subscribe_incoming_challenges(lobby: LobbyService, negotiator: ChallengeNegotiator) -> None:
    received: list[list[ChallengeModel]] = []
    lobby.subscribe_incoming_challenges("bob", received.append)
    challenge_id = negotiator.send("alice", "Alice", "bob", "Bob")
    negotiator.respond(challenge_id, "bob", accept=True)

    assert received[0] == []
    assert any(challenges and challenges[0].id == challenge_id for challenges in received)
    assert received[-1] == []


def test_live_matches(lobby: LobbyService, match_service: MatchService, memory_store: InMemoryRecordStore) -> None:
    """Ongoing matches that allow spectators; half-written documents are left out."""
    match_service.create(Match.new_match("open", ["alice", "bob"]), doc_id="open")
    match_service.create(Match.new_match("private", ["carol", "dave"]), doc_id="private")
    match_service.set_allow_spectators("private", "carol", False)
    memory_store.create(Collection.GAMES, {"status": "ongoing", "allowSpectators": True, "players": []}, doc_id="broken")

    assert [match.id for match in lobby.live_matches()] == ["open"]


def test_subscribe_live_matches(lobby: LobbyService, match_service: MatchService) -> None:
    received: list[list[MatchModel]] = []
    subscription = lobby.subscribe_live_matches(received.append)
    match_service.create(Match.new_match("open", ["alice", "bob"]), doc_id="open")
    for index, player in [(0, "alice"), (3, "bob"), (1, "alice"), (4, "bob"), (2, "alice")]:
        match_service.make_move("open", index, player)

    assert received[0] == []
    assert [match.id for match in received[1]] == ["open"]
    assert received[-1] == []
    subscription.unsubscribe()
