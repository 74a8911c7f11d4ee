"""Unit tests for src/store/memory_store.py"""

from src.store.memory_store import InMemoryRecordStore


def test_generated_ids_are_unique(memory_store: InMemoryRecordStore) -> None:
    ids = {memory_store.create("chat", {"message": "hi"}) for _ in range(20)}
    assert len(ids) == 20


def test_delete_notifies_subscribers(memory_store: InMemoryRecordStore) -> None:
    memory_store.create("games", {"n": 0}, doc_id="g1")
    received: list[bool] = []
    memory_store.subscribe("games", "g1", lambda snapshot: received.append(snapshot.exists))

    memory_store.delete("games", "g1")
    assert received == [True, False]
    assert not memory_store.get("games", "g1").exists


def test_delete_unknown_document_is_silent(memory_store: InMemoryRecordStore) -> None:
    received: list[bool] = []
    memory_store.subscribe("games", "g1", lambda snapshot: received.append(snapshot.exists))
    memory_store.delete("games", "g1")
    assert received == [False]


def test_stores_are_isolated() -> None:
    """Clients only share state when they are connected to the same instance."""
    first = InMemoryRecordStore()
    second = InMemoryRecordStore()
    first.create("games", {"n": 1}, doc_id="g1")
    assert not second.get("games", "g1").exists
