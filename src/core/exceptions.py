"""
Exceptions shared by all layers.

GameError and its subclasses are rule violations: they are handled locally and never written to shared state.
StoreError and its subclasses are record store failures: they are reported, never retried automatically.
"""


class GameError(Exception):
    """Top-level exception for anything the rules of the game (or the session protocol) refuse."""


class InvalidMoveError(GameError):
    """Index out of range or slot already taken."""


class NotYourTurnError(GameError):
    pass


class GameStateError(GameError):
    """The requested action is not valid in the current state of the match/series/challenge."""


class InvalidRequestError(GameError):
    """Raised from request model validation."""


class InconsistentStateError(Exception):
    """A document is missing fields or carries values that break an invariant (repairable)."""


class StoreError(Exception):
    """Failure reported by the record store backend."""


class NotFoundError(StoreError):
    """Referenced document does not exist (anymore)."""

    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {collection}/{doc_id} not found.")


class DocumentExistsError(StoreError):
    """Attempt to create a document under an id that is already taken."""

    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document {collection}/{doc_id} already exists.")
