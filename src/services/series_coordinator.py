"""
Best-of-N series: scores, completion and the readiness handshake that starts the next match.

Both clients may run every transition below at the same time. Each of them is convergent:
* matches of a series have a deterministic id (<series id>-<game number>), so "create" can only happen once
* `games` is only extended when it is exactly one entry short of the target index
* the readiness reset / index increment only happens while the index still has the observed value
* a finished match is counted once (its id is remembered in `scoredGames`), and only by the winner's client
"""

import logging
from typing import Optional

from src.core.exceptions import (
    DocumentExistsError,
    GameStateError,
    InconsistentStateError,
    NotFoundError,
)
from src.core.models import MatchModel, SeriesModel
from src.core.shared_types import (
    Collection,
    DocumentId,
    MatchStatus,
    SeriesStatus,
    Symbol,
    UserId,
)
from src.engine.match import Match
from src.services.match_service import MatchService
from src.store.record_store import SERVER_TIMESTAMP, RecordStore

logger = logging.getLogger(__name__)


def series_match_id(series_id: DocumentId, index: int) -> DocumentId:
    """Id of the match played at position `index` (0-based) of a series."""
    return f"{series_id}-{index + 1}"


class SeriesCoordinator:
    def __init__(self, store: RecordStore, match_service: MatchService) -> None:
        self.store = store
        self.matches = match_service

    def fetch(self, series_id: DocumentId) -> SeriesModel:
        snapshot = self.store.get(Collection.SERIES, series_id)
        if not snapshot.exists or snapshot.data is None:
            raise NotFoundError(Collection.SERIES, series_id)
        return SeriesModel.from_document(series_id, snapshot.data)

    def create(self, series: SeriesModel) -> DocumentId:
        fields = series.to_document()
        fields["createdAt"] = SERVER_TIMESTAMP
        fields["updatedAt"] = SERVER_TIMESTAMP
        series_id = self.store.create(Collection.SERIES, fields)
        logger.info("[series-created] series=%s players=%s best_of=%s", series_id, series.players, series.best_of)
        return series_id

    @staticmethod
    def players_for_game(series: SeriesModel, index: int) -> list[UserId]:
        """
        Player order (first one plays X and starts) of the match at `index`.

        NOTE: the challenger starts the even-indexed games, the challenged player the odd ones.
        """
        challenger, challenged = series.players
        return [challenger, challenged] if index % 2 == 0 else [challenged, challenger]

    def append_game(self, series_id: DocumentId, index: int, match_id: DocumentId) -> bool:
        """Put `match_id` at `games[index]`, only if that strictly extends the list by one."""
        series = self.fetch(series_id)
        if len(series.games) > index:
            if series.games[index] != match_id:
                logger.warning(
                    "[series-append-skip] series=%s index=%s holds %s, not %s",
                    series_id,
                    index,
                    series.games[index],
                    match_id,
                )
            return False
        if len(series.games) < index:
            raise InconsistentStateError(
                f"Series {series_id!r} has {len(series.games)} games, cannot add one at index {index}."
            )
        self.store.update(
            Collection.SERIES,
            series_id,
            {"games": [*series.games, match_id], "updatedAt": SERVER_TIMESTAMP},
        )
        logger.info("[series-append] series=%s index=%s match=%s", series_id, index, match_id)
        return True

    def repair(self, series: SeriesModel) -> SeriesModel:
        """
        A series written by an older or interrupted client can lack (parts of) `nextGameReady`.
        Missing flags are initialized to False in place; flags that exist are never touched.
        """
        ready = series.next_game_ready or {}
        missing = [player for player in series.players if player not in ready]
        if not missing:
            return series

        logger.warning("[series-repair] series=%s missing ready flags for %s", series.id, missing)
        self.store.update(
            Collection.SERIES,
            series.id,
            {f"nextGameReady.{player}": False for player in missing},
        )
        series.next_game_ready = {**ready, **{player: False for player in missing}}
        return series

    def record_result(self, match: MatchModel, reporter: UserId) -> bool:
        """
        Count a finished series match into the scores (draws are not counted).
        ---
        Only the client of the winning player writes, once per match. Returns True if the scores changed.
        """
        if match.series_id is None or match.status != MatchStatus.FINISHED:
            return False
        if match.winner is None or not match.winner.is_decisive:
            return False
        winner_id = match.player_with(Symbol(match.winner.value))
        if reporter != winner_id:
            return False

        series = self.fetch(match.series_id)
        if series.status == SeriesStatus.FINISHED or match.id in series.scored_games:
            logger.debug("[series-score-skip] series=%s match=%s", series.id, match.id)
            return False

        scores = dict(series.scores)
        scores[winner_id] = scores.get(winner_id, 0) + 1
        fields: dict[str, object] = {
            "scores": scores,
            "scoredGames": [*series.scored_games, match.id],
            "updatedAt": SERVER_TIMESTAMP,
        }
        if scores[winner_id] >= series.required_wins:
            fields["status"] = SeriesStatus.FINISHED.value
            fields["winner"] = winner_id
        self.store.update(Collection.SERIES, series.id, fields)
        logger.info(
            "[series-score] series=%s match=%s winner=%s scores=%s finished=%s",
            series.id,
            match.id,
            winner_id,
            scores,
            "status" in fields,
        )
        return True

    def mark_ready(self, series_id: DocumentId, player: UserId) -> None:
        series = self._fetch_for_readiness(series_id, player)
        self._assert_no_match_in_progress(series)
        if series.is_ready(player):
            return
        self._write_ready(series_id, player, True)

    def cancel_ready(self, series_id: DocumentId, player: UserId) -> None:
        series = self._fetch_for_readiness(series_id, player)
        if not series.is_ready(player):
            return
        self._write_ready(series_id, player, False)

    def advance(self, observed: SeriesModel) -> Optional[DocumentId]:
        """
        Both players are ready: get the match for `currentGameIndex` and move the series on.

        ---
        1. reuse `games[index]` if it exists (a pre-created match waiting to start), otherwise create it
        2. append it to `games` (only when strictly extending)
        3. reset the readiness flags and increment the index (only if nobody did so already)

        Decided on the snapshot the caller observed, so a client that lost the race still gets the id of the match
        to open. Returns None when the observed snapshot does not call for a new match.
        """
        if observed.status != SeriesStatus.ONGOING or not observed.both_ready:
            return None
        index = observed.current_game_index

        latest = self.fetch(observed.id)
        if latest.status != SeriesStatus.ONGOING:
            return None

        if index < len(latest.games):
            match_id = latest.games[index]
            if self.matches.fetch(match_id).status == MatchStatus.FINISHED:
                # stale snapshot: that match has been played already
                return None
            self.matches.start(match_id)
        else:
            new_match = Match.new_match(
                series_match_id(latest.id, index),
                self.players_for_game(latest, index),
                series_id=latest.id,
                game_number=index + 1,
            )
            try:
                match_id = self.matches.create(new_match, doc_id=new_match.model.id)
            except DocumentExistsError:
                match_id = new_match.model.id
                logger.debug("[series-advance-replay] series=%s match=%s exists", latest.id, match_id)
            self.append_game(latest.id, index, match_id)

        current = self.fetch(latest.id)
        if current.current_game_index == index:
            self.store.update(
                Collection.SERIES,
                latest.id,
                {
                    "nextGameReady": {player: False for player in current.players},
                    "currentGameIndex": index + 1,
                    "updatedAt": SERVER_TIMESTAMP,
                },
            )
            logger.info("[series-advance] series=%s index=%s match=%s", latest.id, index + 1, match_id)
        return match_id

    # -- Internal helpers --
    def _fetch_for_readiness(self, series_id: DocumentId, player: UserId) -> SeriesModel:
        series = self.fetch(series_id)
        if player not in series.players:
            raise GameStateError(f"{player!r} is not playing in series {series_id!r}.")
        if series.status != SeriesStatus.ONGOING:
            raise GameStateError(f"Series is over. winner: {series.winner}")
        return self.repair(series)

    def _assert_no_match_in_progress(self, series: SeriesModel) -> None:
        """The previous match (if any) must be over before players can get ready for the next one."""
        index = series.current_game_index
        if index == 0 or index > len(series.games):
            return
        previous = self.matches.fetch(series.games[index - 1])
        if previous.status != MatchStatus.FINISHED:
            raise GameStateError(f"Game {index} of the series is still being played.")

    def _write_ready(self, series_id: DocumentId, player: UserId, ready: bool) -> None:
        self.store.update(
            Collection.SERIES,
            series_id,
            {f"nextGameReady.{player}": ready, "updatedAt": SERVER_TIMESTAMP},
        )
        logger.info("[series-ready] series=%s player=%s ready=%s", series_id, player, ready)
