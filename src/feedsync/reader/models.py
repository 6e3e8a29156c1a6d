"""Domain models for the account, group, feed and article hierarchy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(slots=True)
class Account:
    """Data partition every group, feed and article belongs to."""

    account_id: str
    display_name: str


@dataclass(slots=True)
class Group:
    """Named collection of feeds within an account."""

    group_id: str
    account_id: str
    name: str


@dataclass(slots=True)
class Feed:
    """Subscribed source."""

    feed_id: str
    account_id: str
    group_id: str
    title: str
    url: str
    icon: str | None = None
    last_fetched_at: datetime | None = None
    last_error: str | None = None


@dataclass(slots=True)
class Article:
    """Single fetched item of a feed."""

    article_id: str
    account_id: str
    feed_id: str
    external_id: str
    title: str
    link: str
    published_at: datetime
    summary: str | None = None
    content: str | None = None
    is_unread: bool = True
    is_starred: bool = False


@dataclass(slots=True)
class SourceArticle:
    """Candidate article returned by a feed source before persistence."""

    external_id: str
    title: str
    link: str
    published_at: datetime
    summary: str | None = None
    content: str | None = None


@dataclass(slots=True)
class ArticleWithFeed:
    """Article joined with the presentation fields of its feed."""

    article: Article
    feed_title: str
    feed_icon: str | None = None


@dataclass(slots=True)
class GroupWithFeeds:
    """Group annotated with its member feeds."""

    group: Group
    feeds: list[Feed] = field(default_factory=list)


@dataclass(slots=True)
class ImportantCount:
    """Unread, starred or total article count of one feed."""

    feed_id: str
    group_id: str
    important: int


@dataclass(frozen=True, slots=True)
class SyncState:
    """Progress of the sync pass currently running, if any."""

    feed_count: int = 0
    synced_count: int = 0
    current_feed_name: str = ""

    @property
    def is_syncing(self) -> bool:
        return self.feed_count != 0 or self.synced_count != 0 or self.current_feed_name != ""

    @property
    def is_not_syncing(self) -> bool:
        return not self.is_syncing


class ScopeKind(str, Enum):
    """Hierarchy level an article query is restricted to."""

    ACCOUNT = "account"
    GROUP = "group"
    FEED = "feed"


class SubFilter(str, Enum):
    """Flag dimension applied within a scope."""

    ALL = "all"
    STARRED = "starred"
    UNREAD = "unread"


@dataclass(frozen=True, slots=True)
class ArticleScope:
    """Scope of an article query; `target_id` is set for group and feed scopes."""

    kind: ScopeKind
    target_id: str | None = None

    @classmethod
    def account(cls) -> ArticleScope:
        return cls(kind=ScopeKind.ACCOUNT)

    @classmethod
    def group(cls, group_id: str) -> ArticleScope:
        return cls(kind=ScopeKind.GROUP, target_id=group_id)

    @classmethod
    def feed(cls, feed_id: str) -> ArticleScope:
        return cls(kind=ScopeKind.FEED, target_id=feed_id)


@dataclass(frozen=True, slots=True)
class ArticleFilter:
    """Resolved scope and sub-filter of one article query."""

    scope: ArticleScope
    sub_filter: SubFilter

    @classmethod
    def resolve(
        cls,
        *,
        group_id: str | None = None,
        feed_id: str | None = None,
        is_starred: bool = False,
        is_unread: bool = False,
    ) -> ArticleFilter:
        """Pick exactly one scope and one sub-filter.

        A group id wins over a feed id, and the starred flag wins over the
        unread flag. The losing argument is ignored rather than combined.
        """

        if group_id is not None:
            scope = ArticleScope.group(group_id)
        elif feed_id is not None:
            scope = ArticleScope.feed(feed_id)
        else:
            scope = ArticleScope.account()
        return cls(scope=scope, sub_filter=resolve_sub_filter(is_starred, is_unread))


def resolve_sub_filter(is_starred: bool, is_unread: bool) -> SubFilter:
    if is_starred:
        return SubFilter.STARRED
    if is_unread:
        return SubFilter.UNREAD
    return SubFilter.ALL


@dataclass(slots=True)
class ArticlePage:
    """One page of article rows with keys of the neighbouring pages."""

    items: list[ArticleWithFeed]
    prev_key: int | None
    next_key: int | None


@dataclass(slots=True)
class FeedSyncResult:
    """Outcome of syncing one feed inside a pass."""

    feed_id: str
    feed_title: str
    inserted_count: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(slots=True)
class SyncSummary:
    """Result of one sync pass."""

    account_id: str
    coalesced: bool = False
    feeds: list[FeedSyncResult] = field(default_factory=list)

    @property
    def inserted_count(self) -> int:
        return sum(feed.inserted_count for feed in self.feeds)

    @property
    def failed_count(self) -> int:
        return sum(1 for feed in self.feeds if feed.failed)
