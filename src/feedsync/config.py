"""Runtime configuration for sync, queries and storage."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_ACCOUNT_ID = "default_account"


@dataclass(slots=True)
class AccountSettings:
    """Account the CLI operates on when none is passed explicitly."""

    account_id: str = DEFAULT_ACCOUNT_ID
    display_name: str = "Local"


@dataclass(slots=True)
class SyncSettings:
    """Sync pass and periodic trigger settings."""

    interval_minutes: int = 15
    max_workers: int = 1


@dataclass(slots=True)
class QuerySettings:
    """Paged read settings."""

    page_size: int = 50


@dataclass(slots=True)
class HttpSettings:
    """Feed download settings."""

    timeout_seconds: float = 30.0
    max_retries: int = 3


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".feedsync.db")
    sqlite_busy_timeout_ms: int = 5_000
    account: AccountSettings = field(default_factory=AccountSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    query: QuerySettings = field(default_factory=QuerySettings)
    http: HttpSettings = field(default_factory=HttpSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("FEEDSYNC_DB_PATH", ".feedsync.db")),
            sqlite_busy_timeout_ms=int(os.getenv("FEEDSYNC_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            account=AccountSettings(
                account_id=os.getenv("FEEDSYNC_ACCOUNT_ID", DEFAULT_ACCOUNT_ID),
                display_name=os.getenv("FEEDSYNC_ACCOUNT_NAME", "Local"),
            ),
            sync=SyncSettings(
                interval_minutes=int(os.getenv("FEEDSYNC_SYNC_INTERVAL_MINUTES", "15")),
                max_workers=int(os.getenv("FEEDSYNC_SYNC_MAX_WORKERS", "1")),
            ),
            query=QuerySettings(
                page_size=int(os.getenv("FEEDSYNC_QUERY_PAGE_SIZE", "50")),
            ),
            http=HttpSettings(
                timeout_seconds=float(os.getenv("FEEDSYNC_HTTP_TIMEOUT_SECONDS", "30.0")),
                max_retries=int(os.getenv("FEEDSYNC_HTTP_MAX_RETRIES", "3")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the runtime cannot work with."""

        if self.sync.interval_minutes <= 0:
            raise ValueError("FEEDSYNC_SYNC_INTERVAL_MINUTES must be > 0.")
        if self.sync.max_workers <= 0:
            raise ValueError("FEEDSYNC_SYNC_MAX_WORKERS must be > 0.")
        if self.query.page_size <= 0:
            raise ValueError("FEEDSYNC_QUERY_PAGE_SIZE must be > 0.")
        if self.http.timeout_seconds <= 0:
            raise ValueError("FEEDSYNC_HTTP_TIMEOUT_SECONDS must be > 0.")
        if self.http.max_retries < 0:
            raise ValueError("FEEDSYNC_HTTP_MAX_RETRIES must be >= 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("FEEDSYNC_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not self.account.account_id.strip():
            raise ValueError("FEEDSYNC_ACCOUNT_ID must not be empty.")
