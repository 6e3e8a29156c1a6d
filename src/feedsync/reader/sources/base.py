"""Feed source contracts used by the sync pass."""

from __future__ import annotations

from typing import Protocol

from feedsync.reader.models import Feed, SourceArticle


class FeedSource(Protocol):
    """Turns a subscribed feed into candidate articles.

    Implementations raise `feedsync.errors.FeedFetchError` for failures the
    pass should record and skip.
    """

    def fetch(self, feed: Feed) -> list[SourceArticle]:
        """Fetch the articles currently published by the feed."""
        raise NotImplementedError
