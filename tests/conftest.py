"""
Pytest will auto-discover / import this file called 'conftest.py'. ]
This file defines fixtures/variables required for testing multiple layers.
"""

from collections import defaultdict
from typing import Callable, Generator

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.api.models import Navigation
from src.core.config import SessionConfig
from src.core.shared_types import UserId
from src.services.match_service import MatchService
from src.services.session import ClientSession
from src.store.memory_store import InMemoryRecordStore
from src.store.schema import Base
from src.store.sql_store import SQLRecordStore
from tests.fakes import ManualScheduler

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db_session_factory() -> Generator[sessionmaker[Session], None, None]:
    """Session factory of a test database. Tables are removed at teardown to make store tests independent of each other."""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sql_store(db_session_factory: sessionmaker[Session]) -> SQLRecordStore:
    return SQLRecordStore(db_session_factory)


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def match_service(memory_store: InMemoryRecordStore) -> MatchService:
    return MatchService(memory_store)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def config() -> SessionConfig:
    """Short countdowns keep the scheduler loops small."""
    return SessionConfig(turn_seconds=5, rematch_seconds=10, tick_seconds=1.0)


# --- CLIENT SESSIONS ---
@pytest.fixture
def navigation_log() -> defaultdict[UserId, list[Navigation]]:
    """Every Navigation emitted, per user."""
    return defaultdict(list)


@pytest.fixture
def make_session(
    memory_store: InMemoryRecordStore,
    scheduler: ManualScheduler,
    config: SessionConfig,
    navigation_log: defaultdict[UserId, list[Navigation]],
) -> Generator[Callable[[UserId, str], ClientSession], None, None]:
    """Mock real setup: every client session is connected to the same store and the same clock."""
    sessions: list[ClientSession] = []

    def _make(user_id: UserId, user_name: str) -> ClientSession:
        session = ClientSession(
            memory_store,
            user_id,
            user_name,
            config=config,
            scheduler=scheduler,
            on_navigate=navigation_log[user_id].append,
        )
        sessions.append(session)
        return session

    try:
        yield _make
    finally:
        for session in sessions:
            session.close()


@pytest.fixture
def alice(make_session: Callable[[UserId, str], ClientSession]) -> ClientSession:
    return make_session("alice", "Alice")


@pytest.fixture
def bob(make_session: Callable[[UserId, str], ClientSession]) -> ClientSession:
    return make_session("bob", "Bob")
