"""Error types surfaced by the sync core."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FeedsyncError(Exception):
    """Base error for caller-visible failures."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class FeedFetchError(FeedsyncError):
    """One feed could not be downloaded or read; the pass skips it."""

    code: str = "fetch_error"
    feed_url: str | None = None


@dataclass(slots=True)
class DuplicateFeedError(FeedsyncError):
    """The account already subscribes to this source URL."""

    url: str = ""


@dataclass(slots=True)
class SubscribeError(FeedsyncError):
    """Subscribe failed in storage and nothing was persisted."""


@dataclass(slots=True)
class NotFoundError(FeedsyncError):
    """Target row of an update or delete does not exist."""
