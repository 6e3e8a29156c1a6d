"""Read-side facade: streaming lists, paged article views, counts and lookups."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TypeVar

from feedsync.errors import NotFoundError
from feedsync.reader.models import (
    ArticleFilter,
    ArticlePage,
    ArticleWithFeed,
    Feed,
    Group,
    GroupWithFeeds,
    ImportantCount,
    resolve_sub_filter,
)
from feedsync.reader.repository import SQLiteRepository

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
T = TypeVar("T")


class ArticlePager:
    """Offset-keyed pages of one filtered article query, newest first."""

    def __init__(
        self,
        *,
        repository: SQLiteRepository,
        account_id: str,
        article_filter: ArticleFilter,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.repository = repository
        self.account_id = account_id
        self.article_filter = article_filter
        self.page_size = page_size

    def load(self, key: int | None = None, load_size: int | None = None) -> ArticlePage:
        offset = max(0, key or 0)
        size = load_size or self.page_size
        rows = self.repository.list_articles(
            self.account_id,
            self.article_filter,
            offset=offset,
            limit=size + 1,
        )
        has_more = len(rows) > size
        items = rows[:size]
        return ArticlePage(
            items=items,
            prev_key=max(0, offset - size) if offset > 0 else None,
            next_key=offset + len(items) if has_more else None,
        )

    def pages(self) -> Iterator[ArticlePage]:
        key: int | None = None
        while True:
            page = self.load(key)
            yield page
            if page.next_key is None:
                return
            key = page.next_key

    def count(self) -> int:
        return self.repository.count_articles(self.account_id, self.article_filter)

    def __iter__(self) -> Iterator[ArticleWithFeed]:
        for page in self.pages():
            yield from page.items


class ReaderQueries:
    """Filtered, paged reads over the hierarchy plus simple mutations."""

    def __init__(self, repository: SQLiteRepository, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.repository = repository
        self.page_size = page_size

    def pull_groups(
        self,
        account_id: str,
        *,
        stop: threading.Event | None = None,
        poll_seconds: float = 1.0,
    ) -> Iterator[list[Group]]:
        return self._watch(lambda: self.repository.list_groups(account_id), stop, poll_seconds)

    def pull_feeds(
        self,
        account_id: str,
        *,
        stop: threading.Event | None = None,
        poll_seconds: float = 1.0,
    ) -> Iterator[list[GroupWithFeeds]]:
        return self._watch(
            lambda: self.repository.list_groups_with_feeds(account_id),
            stop,
            poll_seconds,
        )

    def pull_articles(
        self,
        account_id: str,
        *,
        group_id: str | None = None,
        feed_id: str | None = None,
        is_starred: bool = False,
        is_unread: bool = False,
        page_size: int | None = None,
    ) -> ArticlePager:
        article_filter = ArticleFilter.resolve(
            group_id=group_id,
            feed_id=feed_id,
            is_starred=is_starred,
            is_unread=is_unread,
        )
        logger.debug(
            "pull_articles: account_id=%s scope=%s target=%s sub_filter=%s",
            account_id,
            article_filter.scope.kind.value,
            article_filter.scope.target_id,
            article_filter.sub_filter.value,
        )
        return ArticlePager(
            repository=self.repository,
            account_id=account_id,
            article_filter=article_filter,
            page_size=page_size or self.page_size,
        )

    def pull_important(
        self,
        account_id: str,
        *,
        is_starred: bool = False,
        is_unread: bool = False,
        stop: threading.Event | None = None,
        poll_seconds: float = 1.0,
    ) -> Iterator[list[ImportantCount]]:
        sub_filter = resolve_sub_filter(is_starred, is_unread)
        logger.debug(
            "pull_important: account_id=%s sub_filter=%s",
            account_id,
            sub_filter.value,
        )
        return self._watch(
            lambda: self.repository.count_important(account_id, sub_filter),
            stop,
            poll_seconds,
        )

    def find_feed_by_id(self, account_id: str, feed_id: str) -> Feed | None:
        return self.repository.get_feed(account_id, feed_id)

    def find_article_by_id(self, account_id: str, article_id: str) -> ArticleWithFeed | None:
        return self.repository.get_article_with_feed(account_id, article_id)

    def is_exist(self, account_id: str, url: str) -> bool:
        return bool(self.repository.find_feeds_by_url(account_id, url))

    def update_group(self, group: Group) -> None:
        if not self.repository.update_group(group):
            raise NotFoundError(f"Group not found: {group.group_id}")

    def delete_group(self, account_id: str, group_id: str) -> None:
        if not self.repository.delete_group(account_id, group_id):
            raise NotFoundError(f"Group not found: {group_id}")
        logger.info("Deleted group %s of account %s", group_id, account_id)

    def update_feed(self, feed: Feed) -> None:
        if self.repository.get_group(feed.account_id, feed.group_id) is None:
            raise NotFoundError(f"Group not found: {feed.group_id}")
        if not self.repository.update_feed(feed):
            raise NotFoundError(f"Feed not found: {feed.feed_id}")

    def delete_feed(self, account_id: str, feed_id: str) -> None:
        if not self.repository.delete_feed(account_id, feed_id):
            raise NotFoundError(f"Feed not found: {feed_id}")
        logger.info("Deleted feed %s of account %s", feed_id, account_id)

    def _watch(
        self,
        load: Callable[[], T],
        stop: threading.Event | None,
        poll_seconds: float,
    ) -> Iterator[T]:
        # Local commits wake the loop at once; commits from other connections
        # or processes are noticed through `data_version` every poll_seconds.
        changes = self.repository.changes
        version = changes.version
        data_version = self.repository.data_version()
        yield load()
        while not (stop is not None and stop.is_set()):
            current = changes.wait_for_change(version, timeout=poll_seconds)
            if changes.closed:
                return
            latest_data_version = self.repository.data_version()
            if current == version and latest_data_version == data_version:
                continue
            version, data_version = current, latest_data_version
            yield load()
