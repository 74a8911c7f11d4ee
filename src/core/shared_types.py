"""
Type definitions used across layers

Status values are stored verbatim in the record store documents, hence StrEnum.
"""

from enum import StrEnum

UserId = str
DocumentId = str


class Collection(StrEnum):
    CHALLENGES = "challenges"
    GAMES = "games"
    SERIES = "series"
    CHAT = "chat"


class Symbol(StrEnum):
    X = "X"
    O = "O"  # noqa: E741

    @property
    def opponent(self) -> "Symbol":
        return Symbol.O if self == Symbol.X else Symbol.X


# An empty board slot is stored as the empty string
EMPTY = ""


class Outcome(StrEnum):
    """Result of evaluating a board."""

    NONE = "none"
    X = "X"
    O = "O"  # noqa: E741
    DRAW = "draw"

    @property
    def is_decisive(self) -> bool:
        return self in (Outcome.X, Outcome.O)


class ChallengeStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class MatchKind(StrEnum):
    SINGLE = "single"
    SERIES = "series"


class MatchStatus(StrEnum):
    WAITING = "waiting"
    ONGOING = "ongoing"
    FINISHED = "finished"


class SeriesStatus(StrEnum):
    ONGOING = "ongoing"
    FINISHED = "finished"


class RematchStatus(StrEnum):
    """Local (per client) view of the rematch negotiation of a finished match."""

    IDLE = "idle"
    WAITING = "waiting"
    REQUESTED = "requested"
    DECLINED = "declined"
    ACCEPTED = "accepted"


class Screen(StrEnum):
    """Navigation targets handed to the UI layer."""

    LOBBY = "lobby"
    CHALLENGE = "challenge"
    MATCH = "match"
    SERIES = "series"
    SPECTATOR = "spectator"
