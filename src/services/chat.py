"""Per-match chat: an unordered, append-only log of messages, shown in timestamp order."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from src.core.shared_types import Collection, DocumentId, UserId
from src.store.record_store import SERVER_TIMESTAMP, DocumentSnapshot, RecordStore, Subscription

logger = logging.getLogger(__name__)

MAX_MESSAGES = 50


@dataclass
class ChatMessage:
    id: DocumentId
    sender_id: UserId
    sender_name: str
    message: str
    timestamp: Optional[str]

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "ChatMessage":
        return cls(
            id=snapshot.id,
            sender_id=snapshot.get("senderId", ""),
            sender_name=snapshot.get("senderName", ""),
            message=snapshot.get("message", ""),
            timestamp=snapshot.get("timestamp"),
        )


def latest_messages(snapshots: list[DocumentSnapshot], limit: int = MAX_MESSAGES) -> list[ChatMessage]:
    """The `limit` most recent messages, oldest first."""
    messages = [ChatMessage.from_snapshot(snapshot) for snapshot in snapshots]
    messages.sort(key=lambda message: message.timestamp or "")
    return messages[-limit:]


class ChatService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def send(
        self, match_id: DocumentId, sender_id: UserId, sender_name: str, text: str
    ) -> Optional[DocumentId]:
        """Blank messages are ignored (returns None)."""
        message = text.strip()
        if not message:
            return None
        message_id = self.store.create(
            Collection.CHAT,
            {
                "matchId": match_id,
                "senderId": sender_id,
                "senderName": sender_name,
                "message": message,
                "timestamp": SERVER_TIMESTAMP,
            },
        )
        logger.debug("[chat] match=%s sender=%s", match_id, sender_id)
        return message_id

    def messages(self, match_id: DocumentId) -> list[ChatMessage]:
        return latest_messages(self.store.query(Collection.CHAT, {"matchId": match_id}))

    def subscribe(
        self, match_id: DocumentId, callback: Callable[[list[ChatMessage]], None]
    ) -> Subscription:
        return self.store.subscribe_query(
            Collection.CHAT,
            {"matchId": match_id},
            lambda snapshots: callback(latest_messages(snapshots)),
        )
