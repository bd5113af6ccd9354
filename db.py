"""Relational store.

Schema for the ``users`` and ``tasks`` tables plus a thin ``Database``
wrapper around a SQLAlchemy engine.  The wrapper is built once at
startup and handed to every store that needs it; all statements it
runs are parameterized SQLAlchemy Core constructs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import (
    Column,
    Date,
    ForeignKey,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.expression import Executable

logger = logging.getLogger(__name__)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", Text),
    Column("description", Text),
    Column("priority", SmallInteger),
    Column("status", SmallInteger),
    Column("due_date", Date),
    Column(
        "owner_id",
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    ),
)


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a write statement."""

    rowcount: int
    inserted_id: int | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Parameterized query execution over a pooled engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs: Any) -> Database:
        """Create an engine for ``url``.

        In-memory SQLite shares one connection so every checkout sees the
        same data.
        """
        if url.startswith("sqlite"):
            engine_kwargs.setdefault(
                "connect_args", {"check_same_thread": False}
            )
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs.setdefault("poolclass", StaticPool)
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
        logger.debug("Creating engine for %s", url.split("@")[-1])
        return cls(create_engine(url, **engine_kwargs))

    # -- schema --------------------------------------------------------------

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    # -- queries -------------------------------------------------------------

    def fetch_one(self, statement: Executable) -> dict[str, Any] | None:
        with self.engine.connect() as conn:
            row = conn.execute(statement).mappings().first()
        return dict(row) if row is not None else None

    def fetch_all(self, statement: Executable) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(statement).mappings().all()
        return [dict(r) for r in rows]

    def execute(self, statement: Executable) -> ExecResult:
        """Run one write statement in its own transaction."""
        with self.engine.begin() as conn:
            result = conn.execute(statement)
            inserted_id = None
            if result.is_insert and result.inserted_primary_key:
                inserted_id = result.inserted_primary_key[0]
            return ExecResult(rowcount=result.rowcount, inserted_id=inserted_id)

    def dispose(self) -> None:
        self.engine.dispose()
