"""Unit tests for src/services/rematch_negotiator.py"""

import pytest

from src.core.exceptions import GameStateError
from src.core.shared_types import MatchStatus, RematchStatus
from src.engine.match import Match
from src.services.match_service import MatchService
from src.services.rematch_negotiator import (
    REMATCH_TRANSITIONS,
    RematchNegotiator,
    is_valid_transition,
    rematch_match_id,
    rematch_status,
)
from src.store.memory_store import InMemoryRecordStore

X_WINS_TOP_ROW = [(0, "alice"), (3, "bob"), (1, "alice"), (4, "bob"), (2, "alice")]


@pytest.fixture
def negotiator(memory_store: InMemoryRecordStore, match_service: MatchService) -> RematchNegotiator:
    return RematchNegotiator(memory_store, match_service)


@pytest.fixture
def finished_id(match_service: MatchService) -> str:
    """alice (X) beat bob"""
    match_id = match_service.create(Match.new_match("m1", ["alice", "bob"]), doc_id="m1")
    for index, player in X_WINS_TOP_ROW:
        match_service.make_move(match_id, index, player)
    return match_id


# --- STATUS ---
def test_status_per_player(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    match = match_service.fetch(finished_id)
    assert rematch_status(match, "alice") == RematchStatus.IDLE

    negotiator.request(finished_id, "alice")
    match = match_service.fetch(finished_id)
    assert rematch_status(match, "alice") == RematchStatus.WAITING
    assert rematch_status(match, "bob") == RematchStatus.REQUESTED


def test_transition_table() -> None:
    assert is_valid_transition(RematchStatus.IDLE, RematchStatus.WAITING)
    assert is_valid_transition(RematchStatus.REQUESTED, RematchStatus.ACCEPTED)
    assert is_valid_transition(RematchStatus.WAITING, RematchStatus.WAITING)
    assert not is_valid_transition(RematchStatus.DECLINED, RematchStatus.IDLE)
    assert not is_valid_transition(RematchStatus.IDLE, RematchStatus.ACCEPTED)
    # terminal states
    assert REMATCH_TRANSITIONS[RematchStatus.ACCEPTED] == frozenset()
    assert REMATCH_TRANSITIONS[RematchStatus.DECLINED] == frozenset()


# --- REQUEST ---
def test_request(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    assert negotiator.request(finished_id, "bob")
    match = match_service.fetch(finished_id)
    assert match.rematch_requested_by == "bob"


def test_second_request_is_ignored(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    """Both players asking at once: the first request stands."""
    assert negotiator.request(finished_id, "bob")
    assert not negotiator.request(finished_id, "alice")
    assert not negotiator.request(finished_id, "bob")
    assert match_service.fetch(finished_id).rematch_requested_by == "bob"


def test_request_on_ongoing_match(negotiator: RematchNegotiator, match_service: MatchService) -> None:
    match_id = match_service.create(Match.new_match("m2", ["alice", "bob"]), doc_id="m2")
    with pytest.raises(GameStateError):
        negotiator.request(match_id, "alice")


def test_request_by_outsider(negotiator: RematchNegotiator, finished_id: str) -> None:
    with pytest.raises(GameStateError):
        negotiator.request(finished_id, "carol")


def test_no_rematch_in_series(negotiator: RematchNegotiator, match_service: MatchService) -> None:
    match_id = match_service.create(
        Match.new_match("s-1", ["alice", "bob"], series_id="s", game_number=1), doc_id="s-1"
    )
    for index, player in X_WINS_TOP_ROW:
        match_service.make_move(match_id, index, player)
    with pytest.raises(GameStateError):
        negotiator.request(match_id, "bob")


# --- ACCEPT ---
def test_accept(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    """The player who accepts starts (plays X) in the rematch."""
    negotiator.request(finished_id, "alice")
    new_id = negotiator.accept(finished_id, "bob")

    assert new_id == rematch_match_id(finished_id)
    assert match_service.fetch(finished_id).rematch_game_id == new_id
    rematch = match_service.fetch(new_id)
    assert rematch.players == ["bob", "alice"]
    assert rematch.status == MatchStatus.ONGOING
    assert rematch.board == [""] * 9


def test_accept_twice(negotiator: RematchNegotiator, memory_store: InMemoryRecordStore, finished_id: str) -> None:
    negotiator.request(finished_id, "alice")
    first = negotiator.accept(finished_id, "bob")
    second = negotiator.accept(finished_id, "bob")
    assert first == second
    assert len(memory_store.query("games", {})) == 2


def test_cannot_accept_own_request(negotiator: RematchNegotiator, finished_id: str) -> None:
    negotiator.request(finished_id, "alice")
    with pytest.raises(GameStateError):
        negotiator.accept(finished_id, "alice")


def test_cannot_accept_without_request(negotiator: RematchNegotiator, finished_id: str) -> None:
    with pytest.raises(GameStateError):
        negotiator.accept(finished_id, "bob")


def test_accept_after_decline(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    negotiator.request(finished_id, "alice")
    negotiator.timeout(finished_id, "alice")
    assert negotiator.accept(finished_id, "bob") is None
    assert match_service.fetch(finished_id).rematch_game_id is None


# --- DECLINE / TIMEOUT ---
def test_decline(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    negotiator.request(finished_id, "alice")
    assert negotiator.decline(finished_id, "bob")

    match = match_service.fetch(finished_id)
    assert match.rematch_declined_by == "bob"
    assert match.rematch_requested_by is None
    assert rematch_status(match, "alice") == RematchStatus.DECLINED
    assert rematch_status(match, "bob") == RematchStatus.DECLINED


def test_double_timeout_writes_once(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    """Both clients' countdowns expire: exactly one rematchDeclinedBy is written."""
    negotiator.request(finished_id, "alice")
    assert negotiator.timeout(finished_id, "bob")
    assert not negotiator.timeout(finished_id, "alice")
    assert match_service.fetch(finished_id).rematch_declined_by == "bob"


def test_timeout_after_accept(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    negotiator.request(finished_id, "alice")
    new_id = negotiator.accept(finished_id, "bob")
    assert not negotiator.timeout(finished_id, "alice")

    match = match_service.fetch(finished_id)
    assert match.rematch_declined_by is None
    assert match.rematch_game_id == new_id


def test_decline_without_request(negotiator: RematchNegotiator, match_service: MatchService, finished_id: str) -> None:
    assert not negotiator.decline(finished_id, "bob")
    assert match_service.fetch(finished_id).rematch_declined_by is None
