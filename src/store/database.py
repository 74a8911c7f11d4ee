"""Generate database session"""

from sqlalchemy import StaticPool, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.config import SessionConfig
from src.store.schema import Base


def build_engine(config: SessionConfig) -> Engine:
    """Create the engine and make sure all tables exist."""
    if config.database_url.startswith("sqlite") and ":memory:" in config.database_url:
        # every connection must see the same in-memory database
        engine = create_engine(
            config.database_url,
            echo=config.sql_echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(config.database_url, echo=config.sql_echo)
    Base.metadata.create_all(bind=engine)
    return engine


def build_session_factory(config: SessionConfig) -> sessionmaker[Session]:
    return sessionmaker(bind=build_engine(config), autoflush=False)
