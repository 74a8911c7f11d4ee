"""Client session settings. Defaults can be overridden through environment variables."""

import os
from typing import Self

from pydantic import BaseModel, Field


class SessionConfig(BaseModel):
    # Countdowns (seconds)
    turn_seconds: int = Field(default=25, ge=1)
    rematch_seconds: int = Field(default=30, ge=1)
    # Interval between two countdown ticks
    tick_seconds: float = Field(default=1.0, gt=0)
    # Persistence (only used by the SQL record store)
    database_url: str = "sqlite:///:memory:"
    sql_echo: bool = False

    @classmethod
    def from_env(cls) -> Self:
        return cls(
            turn_seconds=int(os.environ.get("TTT_TURN_SECONDS", "25")),
            rematch_seconds=int(os.environ.get("TTT_REMATCH_SECONDS", "30")),
            tick_seconds=float(os.environ.get("TTT_TICK_SECONDS", "1.0")),
            database_url=os.environ.get("TTT_DATABASE_URL") or "sqlite:///:memory:",
            sql_echo=os.environ.get("TTT_SQL_ECHO", "0").lower() in ("1", "true", "yes"),
        )
