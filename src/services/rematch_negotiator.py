"""
Rematch negotiation after a single (non-series) match.

Each client derives its own RematchStatus from three fields of the finished match:
`rematchRequestedBy`, `rematchDeclinedBy` and `rematchGameId`. A decisive write (decline/timeout or accept) is
only made while neither `rematchDeclinedBy` nor `rematchGameId` is set, so the first one wins.
"""

import logging
from typing import Optional

from src.core.exceptions import DocumentExistsError, GameStateError
from src.core.models import MatchModel
from src.core.shared_types import (
    Collection,
    DocumentId,
    MatchStatus,
    RematchStatus,
    UserId,
)
from src.engine.match import Match
from src.services.match_service import MatchService
from src.store.record_store import DELETE_FIELD, SERVER_TIMESTAMP, RecordStore

logger = logging.getLogger(__name__)

# Every status a client can observe next, given the one it observed last
REMATCH_TRANSITIONS: dict[RematchStatus, frozenset[RematchStatus]] = {
    RematchStatus.IDLE: frozenset({RematchStatus.WAITING, RematchStatus.REQUESTED}),
    RematchStatus.WAITING: frozenset({RematchStatus.DECLINED, RematchStatus.ACCEPTED}),
    RematchStatus.REQUESTED: frozenset({RematchStatus.DECLINED, RematchStatus.ACCEPTED}),
    RematchStatus.DECLINED: frozenset(),
    RematchStatus.ACCEPTED: frozenset(),
}


def rematch_match_id(match_id: DocumentId) -> DocumentId:
    """A match has at most one rematch, so its id can be derived."""
    return f"{match_id}-rematch"


def rematch_status(match: MatchModel, player: UserId) -> RematchStatus:
    """The rematch negotiation as seen by `player`."""
    if match.rematch_game_id:
        return RematchStatus.ACCEPTED
    if match.rematch_declined_by:
        return RematchStatus.DECLINED
    if match.rematch_requested_by == player:
        return RematchStatus.WAITING
    if match.rematch_requested_by:
        return RematchStatus.REQUESTED
    return RematchStatus.IDLE


def is_valid_transition(previous: RematchStatus, new: RematchStatus) -> bool:
    return previous == new or new in REMATCH_TRANSITIONS[previous]


class RematchNegotiator:
    def __init__(self, store: RecordStore, match_service: MatchService) -> None:
        self.store = store
        self.matches = match_service

    def request(self, match_id: DocumentId, player: UserId) -> bool:
        """Offer a rematch. Returns False when a negotiation already started (nothing is written)."""
        match = self._fetch_finished_single(match_id, player)
        if rematch_status(match, player) != RematchStatus.IDLE:
            logger.debug("[rematch-request-skip] match=%s player=%s", match_id, player)
            return False
        self.store.update(
            Collection.GAMES,
            match_id,
            {
                "rematchRequestedBy": player,
                "rematchRequestedAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("[rematch-requested] match=%s player=%s", match_id, player)
        return True

    def accept(self, match_id: DocumentId, player: UserId) -> Optional[DocumentId]:
        """
        The player who did NOT ask creates the new match, then points the old match to it.

        Returns the id of the rematch (also when it had been created already), None if the offer was declined.
        """
        match = self._fetch_finished_single(match_id, player)
        status = rematch_status(match, player)
        if status == RematchStatus.ACCEPTED:
            return match.rematch_game_id
        if status == RematchStatus.DECLINED:
            return None
        if status != RematchStatus.REQUESTED or match.rematch_requested_by is None:
            raise GameStateError("There is no rematch offer from your opponent to accept.")

        new_match = Match.new_match(rematch_match_id(match_id), [player, match.rematch_requested_by])
        try:
            new_match_id = self.matches.create(new_match, doc_id=new_match.model.id)
        except DocumentExistsError:
            new_match_id = new_match.model.id

        # the offer may have timed out while the new match was being created
        latest = self.matches.fetch(match_id)
        if latest.rematch_declined_by or latest.rematch_game_id:
            logger.info("[rematch-accept-late] match=%s declined/accepted meanwhile", match_id)
            return latest.rematch_game_id
        self.store.update(
            Collection.GAMES,
            match_id,
            {"rematchGameId": new_match_id, "updatedAt": SERVER_TIMESTAMP},
        )
        logger.info("[rematch-accepted] match=%s rematch=%s", match_id, new_match_id)
        return new_match_id

    def decline(self, match_id: DocumentId, player: UserId, timed_out: bool = False) -> bool:
        """
        Decline the offer (explicitly, or because the countdown ran out).

        No-op (returns False) once the negotiation has been decided by anyone.
        """
        match = self._fetch_finished_single(match_id, player)
        if match.rematch_declined_by or match.rematch_game_id:
            logger.debug("[rematch-decline-skip] match=%s player=%s", match_id, player)
            return False
        if match.rematch_requested_by is None:
            return False
        self.store.update(
            Collection.GAMES,
            match_id,
            {
                "rematchDeclinedBy": player,
                "rematchRequestedBy": DELETE_FIELD,
                "rematchRequestedAt": DELETE_FIELD,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info(
            "[%s] match=%s player=%s",
            "rematch-timeout" if timed_out else "rematch-declined",
            match_id,
            player,
        )
        return True

    def timeout(self, match_id: DocumentId, player: UserId) -> bool:
        return self.decline(match_id, player, timed_out=True)

    def _fetch_finished_single(self, match_id: DocumentId, player: UserId) -> MatchModel:
        match = self.matches.fetch(match_id)
        if player not in match.players:
            raise GameStateError(f"{player!r} is not playing in match {match_id!r}.")
        if match.series_id is not None:
            raise GameStateError("Matches of a series continue through the series, not through rematches.")
        if match.status != MatchStatus.FINISHED:
            raise GameStateError(f"Match is not finished yet. status: {match.status}")
        return match
