"""SQLite engine policy and datetime conversions shared by the storage layer."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

# WAL lets stream readers run while a sync pass writes.
_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def to_utc_aware(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; treat naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize to naive UTC before writing so stored values sort correctly."""

    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def sqlite_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    """Engine with one short-lived connection per session, shareable across threads."""

    engine = create_engine(
        sqlite_url(db_path),
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: sqlite3.Connection, _record: object) -> None:
        _configure(dbapi_connection, busy_timeout_ms)

    return engine


def open_raw_connection(*, db_path: Path, busy_timeout_ms: int) -> sqlite3.Connection:
    """Plain sqlite3 connection under the engine's policy, with rows addressable by name."""

    connection = sqlite3.connect(db_path, check_same_thread=False)
    _configure(connection, busy_timeout_ms)
    connection.row_factory = sqlite3.Row
    return connection


def _configure(connection: sqlite3.Connection, busy_timeout_ms: int) -> None:
    cursor = connection.cursor()
    try:
        for pragma in _PRAGMAS:
            cursor.execute(pragma)
        cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    finally:
        cursor.close()
