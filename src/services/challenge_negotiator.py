"""
Challenge negotiation: pending -> accepted | declined (expired is written by an external job).

The recipient is the only client that writes the response, and it checks the status on the latest snapshot before
creating the match or series, so a challenge produces its match/series at most once.
"""

import logging
from typing import Optional

from src.core.exceptions import DocumentExistsError, GameStateError, NotFoundError
from src.core.models import ChallengeModel, SeriesModel
from src.core.shared_types import (
    ChallengeStatus,
    Collection,
    DocumentId,
    MatchKind,
    MatchStatus,
    UserId,
)
from src.engine.match import Match
from src.services.match_service import MatchService
from src.services.series_coordinator import SeriesCoordinator, series_match_id
from src.store.record_store import SERVER_TIMESTAMP, RecordStore

logger = logging.getLogger(__name__)


class ChallengeNegotiator:
    def __init__(
        self,
        store: RecordStore,
        match_service: MatchService,
        series_coordinator: SeriesCoordinator,
    ) -> None:
        self.store = store
        self.matches = match_service
        self.series = series_coordinator

    def fetch(self, challenge_id: DocumentId) -> ChallengeModel:
        snapshot = self.store.get(Collection.CHALLENGES, challenge_id)
        if not snapshot.exists or snapshot.data is None:
            raise NotFoundError(Collection.CHALLENGES, challenge_id)
        return ChallengeModel.from_document(challenge_id, snapshot.data)

    def send(
        self,
        from_user_id: UserId,
        from_user_name: str,
        to_user_id: UserId,
        to_user_name: str,
        match_kind: MatchKind = MatchKind.SINGLE,
        best_of: Optional[int] = None,
    ) -> DocumentId:
        """Create a pending challenge. `best_of` (odd, >= 1) only applies to a series."""
        if from_user_id == to_user_id:
            raise GameStateError("You cannot challenge yourself.")
        if match_kind == MatchKind.SERIES:
            if best_of is None or best_of < 1 or best_of % 2 == 0:
                raise GameStateError(f"A series must be best of an odd number of games, got {best_of!r}.")
        challenge = ChallengeModel(
            id="",
            from_user_id=from_user_id,
            from_user_name=from_user_name,
            to_user_id=to_user_id,
            to_user_name=to_user_name,
            match_kind=match_kind,
            best_of=best_of if match_kind == MatchKind.SERIES else None,
        )
        fields = challenge.to_document()
        fields["createdAt"] = SERVER_TIMESTAMP
        challenge_id = self.store.create(Collection.CHALLENGES, fields)
        logger.info(
            "[challenge-sent] challenge=%s from=%s to=%s kind=%s best_of=%s",
            challenge_id,
            from_user_id,
            to_user_id,
            match_kind,
            best_of,
        )
        return challenge_id

    def respond(self, challenge_id: DocumentId, responder: UserId, accept: bool) -> ChallengeModel:
        """
        Recipient accepts or declines.
        ---
        Anything but a pending challenge is left alone (the current state is returned), so replaying a response
        never creates a second match or series.
        """
        challenge = self.fetch(challenge_id)
        if responder != challenge.to_user_id:
            raise GameStateError("Only the challenged player can respond to a challenge.")
        if challenge.status != ChallengeStatus.PENDING:
            logger.debug("[challenge-respond-skip] challenge=%s status=%s", challenge_id, challenge.status)
            return challenge

        if not accept:
            self.store.update(
                Collection.CHALLENGES,
                challenge_id,
                {"status": ChallengeStatus.DECLINED.value, "respondedAt": SERVER_TIMESTAMP},
            )
            logger.info("[challenge-declined] challenge=%s", challenge_id)
            return self.fetch(challenge_id)

        if challenge.match_kind == MatchKind.SERIES:
            self._accept_series(challenge)
        else:
            self._accept_single(challenge)
        return self.fetch(challenge_id)

    def _accept_single(self, challenge: ChallengeModel) -> None:
        """One match keyed by the challenge id, challenger plays X."""
        match = Match.new_match(challenge.id, [challenge.from_user_id, challenge.to_user_id])
        try:
            self.matches.create(match, doc_id=challenge.id)
        except DocumentExistsError:
            logger.debug("[challenge-accept-replay] match=%s already exists", challenge.id)
        self.store.update(
            Collection.CHALLENGES,
            challenge.id,
            {"status": ChallengeStatus.ACCEPTED.value, "respondedAt": SERVER_TIMESTAMP},
        )
        logger.info("[challenge-accepted] challenge=%s match=%s", challenge.id, challenge.id)

    def _accept_series(self, challenge: ChallengeModel) -> None:
        """Series document, then its first match (waiting until both players are ready), then the backfill."""
        series = SeriesModel(
            id="",
            players=[challenge.from_user_id, challenge.to_user_id],
            player_names=[challenge.from_user_name, challenge.to_user_name],
            best_of=challenge.best_of or 3,
            scores={challenge.from_user_id: 0, challenge.to_user_id: 0},
            next_game_ready={challenge.from_user_id: False, challenge.to_user_id: False},
        )
        series.id = self.series.create(series)

        first_match = Match.new_match(
            series_match_id(series.id, 0),
            self.series.players_for_game(series, 0),
            series_id=series.id,
            game_number=1,
            status=MatchStatus.WAITING,
        )
        try:
            match_id = self.matches.create(first_match, doc_id=first_match.model.id)
        except DocumentExistsError:
            match_id = first_match.model.id
        self.series.append_game(series.id, 0, match_id)

        self.store.update(
            Collection.CHALLENGES,
            challenge.id,
            {
                "seriesId": series.id,
                "status": ChallengeStatus.ACCEPTED.value,
                "respondedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("[challenge-accepted] challenge=%s series=%s first_match=%s", challenge.id, series.id, match_id)
