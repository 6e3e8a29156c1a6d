"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from feedsync.config import DEFAULT_ACCOUNT_ID
from feedsync.reader.models import Feed, SourceArticle
from feedsync.reader.repository import SQLiteRepository
from feedsync.sync.coordinator import SyncCoordinator
from feedsync.sync.state import SyncStateManager

_BASE_PUBLISHED_AT = datetime(2026, 10, 1, 8, 0, tzinfo=UTC)


class ScriptedFeedSource:
    """Serves canned articles (or errors) per feed URL and records every call."""

    def __init__(self) -> None:
        self.responses: dict[str, list[SourceArticle] | Exception] = {}
        self.calls: list[str] = []

    def fetch(self, feed: Feed) -> list[SourceArticle]:
        self.calls.append(feed.url)
        response = self.responses.get(feed.url, [])
        if isinstance(response, Exception):
            raise response
        return list(response)


def make_articles(count: int, *, prefix: str = "item", start: int = 0) -> list[SourceArticle]:
    return [
        SourceArticle(
            external_id=f"{prefix}-{index}",
            title=f"{prefix.title()} {index}",
            link=f"https://example.com/{prefix}/{index}",
            published_at=_BASE_PUBLISHED_AT + timedelta(minutes=index),
            summary=f"Summary {index}",
        )
        for index in range(start, start + count)
    ]


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "feedsync.db"


@pytest.fixture()
def repository(db_path: Path) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(db_path)
    repository.init_schema()
    yield repository
    repository.close()


@pytest.fixture()
def account_id() -> str:
    return DEFAULT_ACCOUNT_ID


@pytest.fixture()
def source() -> ScriptedFeedSource:
    return ScriptedFeedSource()


@pytest.fixture()
def articles() -> Callable[..., list[SourceArticle]]:
    return make_articles


@pytest.fixture()
def coordinator(
    repository: SQLiteRepository,
    source: ScriptedFeedSource,
) -> Iterator[SyncCoordinator]:
    state = SyncStateManager()
    yield SyncCoordinator(repository=repository, source=source, state=state)
    state.close()


@pytest.fixture()
def add_feed(
    coordinator: SyncCoordinator,
) -> Callable[..., Feed]:
    """Subscribe a feed in a (new or given) group with optional initial articles."""

    def _add_feed(
        account_id: str,
        url: str,
        *,
        group_id: str | None = None,
        title: str | None = None,
        initial: list[SourceArticle] | None = None,
    ) -> Feed:
        target_group = group_id or coordinator.add_group(account_id, "News")
        return coordinator.subscribe(
            account_id,
            Feed(
                feed_id="",
                account_id=account_id,
                group_id=target_group,
                title=title or url.rsplit("/", 1)[-1],
                url=url,
            ),
            initial or [],
        )

    return _add_feed
