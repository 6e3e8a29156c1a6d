"""Controllers for account, group, feed and article CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from feedsync.config import Settings
from feedsync.errors import DuplicateFeedError, NotFoundError
from feedsync.http.fetcher import HttpFetcher
from feedsync.reader.models import ArticleWithFeed, Feed
from feedsync.reader.queries import ReaderQueries
from feedsync.reader.repository import SQLiteRepository
from feedsync.reader.sources.rss import RssFeedSource
from feedsync.sync.coordinator import SyncCoordinator
from feedsync.sync.state import SyncStateManager


@dataclass(slots=True)
class AccountAddCommand:
    """CLI inputs for account creation."""

    db_path: Path | None
    account_id: str
    name: str | None


@dataclass(slots=True)
class GroupCommand:
    """CLI inputs for group commands; unused fields stay None."""

    db_path: Path | None
    account_id: str | None
    group_id: str | None = None
    name: str | None = None


@dataclass(slots=True)
class FeedSubscribeCommand:
    """CLI inputs for feed subscription."""

    db_path: Path | None
    account_id: str | None
    url: str
    group_id: str
    title: str | None


@dataclass(slots=True)
class FeedCommand:
    """CLI inputs for feed listing and deletion."""

    db_path: Path | None
    account_id: str | None
    feed_id: str | None = None


@dataclass(slots=True)
class ArticleListCommand:
    """CLI inputs for paged article listing."""

    db_path: Path | None
    account_id: str | None
    group_id: str | None
    feed_id: str | None
    starred: bool
    unread: bool
    page: int
    page_size: int | None


@dataclass(slots=True)
class ArticleMarkCommand:
    """CLI inputs for read/star toggles of one article."""

    db_path: Path | None
    account_id: str | None
    article_id: str
    read: bool | None
    starred: bool | None


@dataclass(slots=True)
class ArticleReadAllCommand:
    """CLI inputs for marking a scope as read."""

    db_path: Path | None
    account_id: str | None
    group_id: str | None
    feed_id: str | None


@dataclass(slots=True)
class CountsCommand:
    """CLI inputs for per-feed counts."""

    db_path: Path | None
    account_id: str | None
    starred: bool
    unread: bool


class ReaderCliController:
    """Coordinates reader command execution."""

    def add_account(self, command: AccountAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account = repository.ensure_account(command.account_id, command.name)
        return [f"Account: {account.account_id} ({account.display_name})"]

    def add_group(self, command: GroupCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            with _coordinator(repository, settings) as coordinator:
                group_id = coordinator.add_group(account_id, command.name or "")
        return [f"Group created: {group_id}"]

    def list_groups(self, command: GroupCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            groups_with_feeds = next(ReaderQueries(repository).pull_feeds(account_id))

        if not groups_with_feeds:
            return ["No groups."]
        lines: list[str] = []
        for entry in groups_with_feeds:
            lines.append(
                f"{entry.group.group_id} {entry.group.name} feeds={len(entry.feeds)}",
            )
            for feed in entry.feeds:
                lines.append(f"  {feed.feed_id} {feed.title} <{feed.url}>")
        return lines

    def rename_group(self, command: GroupCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            group = repository.get_group(account_id, command.group_id or "")
            if group is None:
                raise NotFoundError(f"Group not found: {command.group_id}")
            ReaderQueries(repository).update_group(replace(group, name=command.name or ""))
        return [f"Group renamed: {command.group_id} -> {command.name}"]

    def delete_group(self, command: GroupCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            ReaderQueries(repository).delete_group(account_id, command.group_id or "")
        return [f"Group deleted: {command.group_id}"]

    def subscribe(self, command: FeedSubscribeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository, open_feed_source(settings) as source:
            coordinator = _build_coordinator(repository, settings, source)
            account_id = resolve_account_id(repository, settings, command.account_id)
            if ReaderQueries(repository).is_exist(account_id, command.url):
                raise DuplicateFeedError(
                    f"Feed already subscribed in account {account_id}: {command.url}",
                    url=command.url,
                )
            document = source.fetch_document(command.url)
            feed = coordinator.subscribe(
                account_id,
                Feed(
                    feed_id="",
                    account_id=account_id,
                    group_id=command.group_id,
                    title=command.title or document.title,
                    url=command.url,
                    icon=document.icon,
                ),
                document.articles,
            )
        return [
            f"Subscribed: {feed.feed_id} {feed.title} articles={len(document.articles)}",
        ]

    def list_feeds(self, command: FeedCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            feeds = repository.list_feeds(account_id)

        if not feeds:
            return ["No feeds."]
        return [
            f"{feed.feed_id} {feed.title} <{feed.url}> group={feed.group_id} "
            f"last_fetched={feed.last_fetched_at.isoformat() if feed.last_fetched_at else '-'} "
            f"error={feed.last_error or '-'}"
            for feed in feeds
        ]

    def delete_feed(self, command: FeedCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            ReaderQueries(repository).delete_feed(account_id, command.feed_id or "")
        return [f"Feed deleted: {command.feed_id}"]

    def list_articles(self, command: ArticleListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            pager = ReaderQueries(repository, page_size=settings.query.page_size).pull_articles(
                account_id,
                group_id=command.group_id,
                feed_id=command.feed_id,
                is_starred=command.starred,
                is_unread=command.unread,
                page_size=command.page_size,
            )
            page = pager.load(key=(command.page - 1) * pager.page_size)
            total = pager.count()

        lines = [
            f"Articles: total={total} page={command.page} "
            f"scope={pager.article_filter.scope.kind.value} "
            f"filter={pager.article_filter.sub_filter.value}",
        ]
        lines.extend(_article_line(row) for row in page.items)
        if page.next_key is not None:
            lines.append(f"More: --page {command.page + 1}")
        return lines

    def mark_article(self, command: ArticleMarkCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            row = ReaderQueries(repository).find_article_by_id(account_id, command.article_id)
            if row is None:
                raise NotFoundError(f"Article not found: {command.article_id}")
            article = row.article
            if command.read is not None:
                article = replace(article, is_unread=not command.read)
            if command.starred is not None:
                article = replace(article, is_starred=command.starred)
            with _coordinator(repository, settings) as coordinator:
                coordinator.update_article_info(account_id, article)
        return [_article_line(ArticleWithFeed(article, row.feed_title, row.feed_icon))]

    def read_all(self, command: ArticleReadAllCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            with _coordinator(repository, settings) as coordinator:
                updated = coordinator.mark_all_as_read(
                    account_id,
                    group_id=command.group_id,
                    feed_id=command.feed_id,
                )
        return [f"Marked as read: {updated}"]

    def counts(self, command: CountsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_repository(settings) as repository:
            account_id = resolve_account_id(repository, settings, command.account_id)
            counts = next(
                ReaderQueries(repository).pull_important(
                    account_id,
                    is_starred=command.starred,
                    is_unread=command.unread,
                ),
            )
            titles = {feed.feed_id: feed.title for feed in repository.list_feeds(account_id)}

        if not counts:
            return ["No articles."]
        return [
            f"{count.feed_id} {titles.get(count.feed_id, '?')} "
            f"group={count.group_id} count={count.important}"
            for count in counts
        ]


def _article_line(row: ArticleWithFeed) -> str:
    article = row.article
    flags = ("*" if article.is_starred else "-") + ("U" if article.is_unread else "-")
    return (
        f"[{flags}] {article.article_id} {article.published_at.date().isoformat()} "
        f"{row.feed_title}: {article.title}"
    )


def resolve_account_id(
    repository: SQLiteRepository,
    settings: Settings,
    override: str | None,
) -> str:
    """Account for a command: the configured default is created on demand, overrides must exist."""

    account_id = override or settings.account.account_id
    if override is None:
        repository.ensure_account(account_id, settings.account.display_name)
    elif account_id not in {account.account_id for account in repository.list_accounts()}:
        raise NotFoundError(f"Account not found: {account_id}")
    return account_id


@contextmanager
def _coordinator(
    repository: SQLiteRepository,
    settings: Settings,
) -> Iterator[SyncCoordinator]:
    with open_feed_source(settings) as source:
        yield _build_coordinator(repository, settings, source)


def _build_coordinator(
    repository: SQLiteRepository,
    settings: Settings,
    source: RssFeedSource,
) -> SyncCoordinator:
    return SyncCoordinator(
        repository=repository,
        source=source,
        state=SyncStateManager(),
        settings=settings.sync,
    )


@contextmanager
def open_repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(
        settings.db_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


@contextmanager
def open_feed_source(settings: Settings) -> Iterator[RssFeedSource]:
    with HttpFetcher(
        timeout_seconds=settings.http.timeout_seconds,
        max_retries=settings.http.max_retries,
    ) as fetcher:
        yield RssFeedSource(fetcher)
