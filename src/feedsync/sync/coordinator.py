"""Sync pass over all feeds of an account."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime

from feedsync.config import SyncSettings
from feedsync.errors import DuplicateFeedError, FeedFetchError
from feedsync.reader.models import (
    Article,
    ArticleFilter,
    Feed,
    FeedSyncResult,
    SourceArticle,
    SyncState,
    SyncSummary,
)
from feedsync.reader.repository import SQLiteRepository
from feedsync.reader.sources.base import FeedSource
from feedsync.reader.storage.common import utc_now
from feedsync.sync.state import SyncStateManager

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Refreshes feeds and publishes progress through a `SyncStateManager`.

    One pass runs at a time. A `sync()` for an account whose pass is already
    running returns immediately with a coalesced summary; passes for other
    accounts wait for the running one to finish.
    """

    def __init__(
        self,
        *,
        repository: SQLiteRepository,
        source: FeedSource,
        state: SyncStateManager,
        settings: SyncSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.source = source
        self.state = state
        self.settings = settings or SyncSettings()
        self._clock = clock
        self._pass_lock = threading.Lock()
        self._active_guard = threading.Lock()
        self._active_accounts: set[str] = set()

    def sync(self, account_id: str) -> SyncSummary:
        with self._active_guard:
            if account_id in self._active_accounts:
                logger.info("Sync pass already running for account %s; coalesced", account_id)
                return SyncSummary(account_id=account_id, coalesced=True)
            self._active_accounts.add(account_id)

        try:
            with self._pass_lock:
                return self._run_pass(account_id)
        finally:
            with self._active_guard:
                self._active_accounts.discard(account_id)

    def is_syncing(self, account_id: str) -> bool:
        with self._active_guard:
            return account_id in self._active_accounts

    def subscribe(
        self,
        account_id: str,
        feed: Feed,
        articles: Sequence[SourceArticle],
    ) -> Feed:
        """Add a feed with its initial articles; nothing is stored on failure."""

        if self.repository.find_feeds_by_url(account_id, feed.url):
            raise DuplicateFeedError(
                f"Feed already subscribed in account {account_id}: {feed.url}",
                url=feed.url,
            )
        created = self.repository.insert_feed_with_articles(
            replace(feed, account_id=account_id),
            articles,
        )
        logger.info(
            "Subscribed feed %s (%s) in account %s with %d articles",
            created.feed_id,
            created.url,
            account_id,
            len(articles),
        )
        return created

    def add_group(self, account_id: str, name: str) -> str:
        return self.repository.insert_group(account_id, name).group_id

    def update_article_info(self, account_id: str, article: Article) -> None:
        if not self.repository.update_article(replace(article, account_id=account_id)):
            logger.debug("Article %s no longer exists; update ignored", article.article_id)

    def mark_all_as_read(
        self,
        account_id: str,
        *,
        group_id: str | None = None,
        feed_id: str | None = None,
    ) -> int:
        scope = ArticleFilter.resolve(group_id=group_id, feed_id=feed_id).scope
        return self.repository.mark_as_read(account_id, scope)

    def _run_pass(self, account_id: str) -> SyncSummary:
        summary = SyncSummary(account_id=account_id)
        try:
            feeds = self.repository.list_feeds(account_id)
            self.state.update_sync_state(lambda _: SyncState(feed_count=len(feeds)))
            logger.info("Sync pass started for account %s: %d feeds", account_id, len(feeds))

            workers = min(self.settings.max_workers, len(feeds))
            if workers <= 1:
                summary.feeds = [self._sync_feed(feed) for feed in feeds]
            else:
                with ThreadPoolExecutor(
                    max_workers=workers,
                    thread_name_prefix="feedsync-sync",
                ) as executor:
                    summary.feeds = list(executor.map(self._sync_feed, feeds))
        finally:
            self.state.reset()

        logger.info(
            "Sync pass finished for account %s: feeds=%d inserted=%d failed=%d",
            account_id,
            len(summary.feeds),
            summary.inserted_count,
            summary.failed_count,
        )
        return summary

    def _sync_feed(self, feed: Feed) -> FeedSyncResult:
        self.state.update_sync_state(lambda state: replace(state, current_feed_name=feed.title))
        result = FeedSyncResult(feed_id=feed.feed_id, feed_title=feed.title)
        try:
            try:
                result.inserted_count = self._store_new_articles(feed)
            except FeedFetchError as error:
                logger.warning("Skipping feed %s (%s): %s", feed.feed_id, feed.url, error)
                result.error = str(error)
            except Exception as error:
                logger.exception("Sync failed for feed %s (%s)", feed.feed_id, feed.url)
                result.error = str(error) or type(error).__name__

            try:
                self.repository.record_feed_fetch(
                    feed.account_id,
                    feed.feed_id,
                    fetched_at=self._clock(),
                    error=result.error,
                )
            except Exception:
                logger.exception("Failed to record fetch metadata for feed %s", feed.feed_id)
        finally:
            self.state.update_sync_state(
                lambda state: replace(state, synced_count=state.synced_count + 1),
            )
        return result

    def _store_new_articles(self, feed: Feed) -> int:
        candidates = self.source.fetch(feed)
        known = self.repository.list_external_ids(feed.account_id, feed.feed_id)
        fresh = [article for article in candidates if article.external_id not in known]
        return self.repository.insert_articles(feed.account_id, feed.feed_id, fresh)
