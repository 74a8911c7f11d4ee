"""Lobby listings: challenges waiting for an answer and live matches that can be watched."""

from typing import Callable

from src.core.exceptions import InconsistentStateError
from src.core.models import ChallengeModel, MatchModel
from src.core.shared_types import ChallengeStatus, Collection, MatchStatus, UserId
from src.store.record_store import DocumentSnapshot, RecordStore, Subscription


def _challenges(snapshots: list[DocumentSnapshot]) -> list[ChallengeModel]:
    return [
        ChallengeModel.from_document(snapshot.id, snapshot.data)
        for snapshot in snapshots
        if snapshot.data is not None
    ]


def _matches(snapshots: list[DocumentSnapshot]) -> list[MatchModel]:
    matches: list[MatchModel] = []
    for snapshot in snapshots:
        if snapshot.data is None:
            continue
        try:
            matches.append(MatchModel.from_document(snapshot.id, snapshot.data))
        except InconsistentStateError:
            # half-written match: it shows up once complete
            continue
    return matches


class LobbyService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    @staticmethod
    def _incoming_filters(user_id: UserId) -> dict[str, str]:
        return {"toUserId": user_id, "status": ChallengeStatus.PENDING.value}

    @staticmethod
    def _live_filters() -> dict[str, object]:
        return {"status": MatchStatus.ONGOING.value, "allowSpectators": True}

    def incoming_challenges(self, user_id: UserId) -> list[ChallengeModel]:
        return _challenges(self.store.query(Collection.CHALLENGES, self._incoming_filters(user_id)))

    def live_matches(self) -> list[MatchModel]:
        return _matches(self.store.query(Collection.GAMES, self._live_filters()))

    def subscribe_incoming_challenges(
        self, user_id: UserId, callback: Callable[[list[ChallengeModel]], None]
    ) -> Subscription:
        return self.store.subscribe_query(
            Collection.CHALLENGES,
            self._incoming_filters(user_id),
            lambda snapshots: callback(_challenges(snapshots)),
        )

    def subscribe_live_matches(
        self, callback: Callable[[list[MatchModel]], None]
    ) -> Subscription:
        return self.store.subscribe_query(
            Collection.GAMES,
            self._live_filters(),
            lambda snapshots: callback(_matches(snapshots)),
        )
