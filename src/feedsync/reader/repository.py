"""SQLModel-backed storage facade for the reader hierarchy."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, delete, select

from feedsync.errors import DuplicateFeedError, NotFoundError, SubscribeError
from feedsync.reader.models import (
    Account,
    Article,
    ArticleFilter,
    ArticleScope,
    ArticleWithFeed,
    Feed,
    Group,
    GroupWithFeeds,
    ImportantCount,
    ScopeKind,
    SourceArticle,
    SubFilter,
)
from feedsync.reader.storage.alembic_runner import upgrade_head
from feedsync.reader.storage.changes import ChangeNotifier
from feedsync.reader.storage.common import (
    build_sqlite_engine,
    open_raw_connection,
    to_naive_utc,
    to_utc_aware,
    utc_now,
)
from feedsync.reader.storage.sqlmodel_models import (
    AccountRow,
    ArticleRow,
    FeedRow,
    GroupRow,
)

logger = logging.getLogger(__name__)


class SQLiteRepository:
    """Facade that persists accounts, groups, feeds and articles using SQLModel and Alembic."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        self.changes = ChangeNotifier()

        # Low-level connection for change detection and ad-hoc debugging queries.
        self._connection = open_raw_connection(
            db_path=db_path,
            busy_timeout_ms=busy_timeout_ms,
        )
        self._connection_lock = threading.Lock()

    def close(self) -> None:
        self.changes.close()
        with self._connection_lock:
            self._connection.close()
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def data_version(self) -> int:
        """SQLite `data_version`: moves whenever another connection commits to the file."""

        with self._connection_lock:
            return int(self._connection.execute("PRAGMA data_version").fetchone()[0])

    # -- accounts --------------------------------------------------------------

    def ensure_account(self, account_id: str, display_name: str | None = None) -> Account:
        with Session(self.engine) as session:
            row = session.get(AccountRow, account_id)
            if row is None:
                row = AccountRow(
                    account_id=account_id,
                    display_name=display_name or account_id,
                    created_at=utc_now(),
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                self.changes.bump()
            return Account(account_id=row.account_id, display_name=row.display_name)

    def list_accounts(self) -> list[Account]:
        with Session(self.engine) as session:
            rows = session.exec(select(AccountRow).order_by(col(AccountRow.account_id))).all()
            return [
                Account(account_id=row.account_id, display_name=row.display_name) for row in rows
            ]

    # -- groups ----------------------------------------------------------------

    def insert_group(self, account_id: str, name: str) -> Group:
        row = GroupRow(group_id=str(uuid4()), account_id=account_id, name=name)
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            group = _group_from_row(row)
        self.changes.bump()
        return group

    def get_group(self, account_id: str, group_id: str) -> Group | None:
        with Session(self.engine) as session:
            row = _scoped_group(session, account_id, group_id)
            return _group_from_row(row) if row is not None else None

    def list_groups(self, account_id: str) -> list[Group]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(GroupRow)
                .where(GroupRow.account_id == account_id)
                .order_by(col(GroupRow.name), col(GroupRow.group_id)),
            ).all()
            return [_group_from_row(row) for row in rows]

    def list_groups_with_feeds(self, account_id: str) -> list[GroupWithFeeds]:
        with Session(self.engine) as session:
            group_rows = session.exec(
                select(GroupRow)
                .where(GroupRow.account_id == account_id)
                .order_by(col(GroupRow.name), col(GroupRow.group_id)),
            ).all()
            feed_rows = session.exec(
                select(FeedRow)
                .where(FeedRow.account_id == account_id)
                .order_by(col(FeedRow.title), col(FeedRow.feed_id)),
            ).all()

        feeds_by_group: dict[str, list[Feed]] = defaultdict(list)
        for feed_row in feed_rows:
            feeds_by_group[feed_row.group_id].append(_feed_from_row(feed_row))
        return [
            GroupWithFeeds(
                group=_group_from_row(group_row),
                feeds=feeds_by_group.get(group_row.group_id, []),
            )
            for group_row in group_rows
        ]

    def update_group(self, group: Group) -> bool:
        with Session(self.engine) as session:
            row = _scoped_group(session, group.account_id, group.group_id)
            if row is None:
                return False
            row.name = group.name
            session.add(row)
            session.commit()
        self.changes.bump()
        return True

    def delete_group(self, account_id: str, group_id: str) -> bool:
        """Remove a group with its feeds and their articles in one transaction."""

        with Session(self.engine) as session:
            row = _scoped_group(session, account_id, group_id)
            if row is None:
                return False
            feed_ids = session.exec(
                select(FeedRow.feed_id).where(
                    FeedRow.account_id == account_id,
                    FeedRow.group_id == group_id,
                ),
            ).all()
            if feed_ids:
                session.exec(
                    delete(ArticleRow).where(
                        col(ArticleRow.account_id) == account_id,
                        col(ArticleRow.feed_id).in_(list(feed_ids)),
                    ),
                )
                session.exec(
                    delete(FeedRow).where(
                        col(FeedRow.account_id) == account_id,
                        col(FeedRow.group_id) == group_id,
                    ),
                )
            session.delete(row)
            session.commit()
        self.changes.bump()
        return True

    # -- feeds -----------------------------------------------------------------

    def get_feed(self, account_id: str, feed_id: str) -> Feed | None:
        with Session(self.engine) as session:
            row = _scoped_feed(session, account_id, feed_id)
            return _feed_from_row(row) if row is not None else None

    def list_feeds(self, account_id: str) -> list[Feed]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(FeedRow)
                .where(FeedRow.account_id == account_id)
                .order_by(col(FeedRow.title), col(FeedRow.feed_id)),
            ).all()
            return [_feed_from_row(row) for row in rows]

    def find_feeds_by_url(self, account_id: str, url: str) -> list[Feed]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(FeedRow).where(
                    FeedRow.account_id == account_id,
                    FeedRow.url == url,
                ),
            ).all()
            return [_feed_from_row(row) for row in rows]

    def insert_feed_with_articles(
        self,
        feed: Feed,
        articles: Sequence[SourceArticle],
    ) -> Feed:
        """Insert a feed and its initial articles as one unit.

        Raises `DuplicateFeedError` before writing when the URL is taken, and
        `SubscribeError` after rollback for any other storage failure.
        """

        with Session(self.engine) as session:
            if _scoped_group(session, feed.account_id, feed.group_id) is None:
                raise NotFoundError(f"Group not found: {feed.group_id}")
            taken = session.exec(
                select(FeedRow.feed_id).where(
                    FeedRow.account_id == feed.account_id,
                    FeedRow.url == feed.url,
                ),
            ).first()
            if taken is not None:
                raise DuplicateFeedError(
                    f"Feed already subscribed in account {feed.account_id}: {feed.url}",
                    url=feed.url,
                )

            row = FeedRow(
                feed_id=feed.feed_id or str(uuid4()),
                account_id=feed.account_id,
                group_id=feed.group_id,
                title=feed.title,
                url=feed.url,
                icon=feed.icon,
                last_fetched_at=to_naive_utc(feed.last_fetched_at),
                last_error=feed.last_error,
            )
            try:
                session.add(row)
                session.flush()
                for values in _article_values(
                    account_id=row.account_id,
                    feed_id=row.feed_id,
                    articles=articles,
                ):
                    session.add(ArticleRow(**values))
                session.commit()
            except IntegrityError as error:
                session.rollback()
                if _is_feed_url_conflict(error):
                    raise DuplicateFeedError(
                        f"Feed already subscribed in account {feed.account_id}: {feed.url}",
                        url=feed.url,
                    ) from error
                raise SubscribeError(f"Failed to subscribe {feed.url}: {error}") from error
            except SQLAlchemyError as error:
                session.rollback()
                raise SubscribeError(f"Failed to subscribe {feed.url}: {error}") from error
            session.refresh(row)
            created = _feed_from_row(row)
        self.changes.bump()
        return created

    def update_feed(self, feed: Feed) -> bool:
        with Session(self.engine) as session:
            row = _scoped_feed(session, feed.account_id, feed.feed_id)
            if row is None:
                return False
            row.group_id = feed.group_id
            row.title = feed.title
            row.url = feed.url
            row.icon = feed.icon
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                if _is_feed_url_conflict(error):
                    raise DuplicateFeedError(
                        f"Feed already subscribed in account {feed.account_id}: {feed.url}",
                        url=feed.url,
                    ) from error
                raise
        self.changes.bump()
        return True

    def record_feed_fetch(
        self,
        account_id: str,
        feed_id: str,
        *,
        fetched_at: datetime,
        error: str | None,
    ) -> None:
        with Session(self.engine) as session:
            row = _scoped_feed(session, account_id, feed_id)
            if row is None:
                return
            row.last_fetched_at = to_naive_utc(fetched_at)
            row.last_error = error
            session.add(row)
            session.commit()
        self.changes.bump()

    def delete_feed(self, account_id: str, feed_id: str) -> bool:
        """Delete the feed's articles, then the feed row, in one transaction."""

        with Session(self.engine) as session:
            row = _scoped_feed(session, account_id, feed_id)
            if row is None:
                return False
            session.exec(
                delete(ArticleRow).where(
                    col(ArticleRow.account_id) == account_id,
                    col(ArticleRow.feed_id) == feed_id,
                ),
            )
            session.delete(row)
            session.commit()
        self.changes.bump()
        return True

    # -- articles --------------------------------------------------------------

    def list_external_ids(self, account_id: str, feed_id: str) -> set[str]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(ArticleRow.external_id).where(
                    ArticleRow.account_id == account_id,
                    ArticleRow.feed_id == feed_id,
                ),
            ).all()
            return set(rows)

    def insert_articles(
        self,
        account_id: str,
        feed_id: str,
        articles: Sequence[SourceArticle],
    ) -> int:
        """Insert articles, ignoring any whose external id the feed already has."""

        values = _article_values(account_id=account_id, feed_id=feed_id, articles=articles)
        if not values:
            return 0
        statement = (
            sqlite_insert(ArticleRow)
            .values(values)
            .on_conflict_do_nothing(index_elements=["feed_id", "external_id"])
        )
        with Session(self.engine) as session:
            result = session.exec(statement)  # type: ignore[call-overload]
            session.commit()
            inserted = max(0, int(result.rowcount or 0))
        if inserted < len(values):
            logger.debug(
                "Skipped %d already stored articles for feed %s",
                len(values) - inserted,
                feed_id,
            )
        if inserted:
            self.changes.bump()
        return inserted

    def update_article(self, article: Article) -> bool:
        with Session(self.engine) as session:
            row = session.exec(
                select(ArticleRow).where(
                    ArticleRow.article_id == article.article_id,
                    ArticleRow.account_id == article.account_id,
                ),
            ).one_or_none()
            if row is None:
                return False
            row.title = article.title
            row.summary = article.summary
            row.content = article.content
            row.is_unread = article.is_unread
            row.is_starred = article.is_starred
            session.add(row)
            session.commit()
        self.changes.bump()
        return True

    def get_article_with_feed(self, account_id: str, article_id: str) -> ArticleWithFeed | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(ArticleRow, FeedRow.title, FeedRow.icon)
                .join(FeedRow, col(FeedRow.feed_id) == col(ArticleRow.feed_id))
                .where(
                    ArticleRow.account_id == account_id,
                    ArticleRow.article_id == article_id,
                ),
            ).one_or_none()
            if row is None:
                return None
            article_row, feed_title, feed_icon = row
            return ArticleWithFeed(
                article=_article_from_row(article_row),
                feed_title=feed_title,
                feed_icon=feed_icon,
            )

    def list_articles(
        self,
        account_id: str,
        article_filter: ArticleFilter,
        *,
        offset: int,
        limit: int,
    ) -> list[ArticleWithFeed]:
        statement = select(ArticleRow, FeedRow.title, FeedRow.icon).join(
            FeedRow,
            col(FeedRow.feed_id) == col(ArticleRow.feed_id),
        )
        statement = _apply_filter(statement, account_id, article_filter)
        statement = (
            statement.order_by(
                col(ArticleRow.published_at).desc(),
                col(ArticleRow.article_id).desc(),
            )
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
            return [
                ArticleWithFeed(
                    article=_article_from_row(article_row),
                    feed_title=feed_title,
                    feed_icon=feed_icon,
                )
                for article_row, feed_title, feed_icon in rows
            ]

    def count_articles(self, account_id: str, article_filter: ArticleFilter) -> int:
        statement = (
            select(func.count(col(ArticleRow.article_id)))
            .select_from(ArticleRow)
            .join(FeedRow, col(FeedRow.feed_id) == col(ArticleRow.feed_id))
        )
        statement = _apply_filter(statement, account_id, article_filter)
        with Session(self.engine) as session:
            return int(session.exec(statement).one())

    def count_important(self, account_id: str, sub_filter: SubFilter) -> list[ImportantCount]:
        statement = (
            select(
                ArticleRow.feed_id,
                FeedRow.group_id,
                func.count(col(ArticleRow.article_id)),
            )
            .join(FeedRow, col(FeedRow.feed_id) == col(ArticleRow.feed_id))
            .where(ArticleRow.account_id == account_id)
            .group_by(col(ArticleRow.feed_id), col(FeedRow.group_id))
            .order_by(col(ArticleRow.feed_id))
        )
        statement = _apply_sub_filter(statement, sub_filter)
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
            return [
                ImportantCount(feed_id=feed_id, group_id=group_id, important=int(count))
                for feed_id, group_id, count in rows
            ]

    def mark_as_read(self, account_id: str, scope: ArticleScope) -> int:
        with Session(self.engine) as session:
            statement = select(ArticleRow).where(
                ArticleRow.account_id == account_id,
                col(ArticleRow.is_unread).is_(True),
            )
            if scope.kind is ScopeKind.GROUP:
                statement = statement.where(
                    col(ArticleRow.feed_id).in_(
                        select(FeedRow.feed_id).where(
                            FeedRow.account_id == account_id,
                            FeedRow.group_id == scope.target_id,
                        ),
                    ),
                )
            elif scope.kind is ScopeKind.FEED:
                statement = statement.where(ArticleRow.feed_id == scope.target_id)
            rows = session.exec(statement).all()
            for row in rows:
                row.is_unread = False
                session.add(row)
            session.commit()
            updated = len(rows)
        if updated:
            self.changes.bump()
        return updated


def _scoped_group(session: Session, account_id: str, group_id: str) -> GroupRow | None:
    return session.exec(
        select(GroupRow).where(
            GroupRow.account_id == account_id,
            GroupRow.group_id == group_id,
        ),
    ).one_or_none()


def _scoped_feed(session: Session, account_id: str, feed_id: str) -> FeedRow | None:
    return session.exec(
        select(FeedRow).where(
            FeedRow.account_id == account_id,
            FeedRow.feed_id == feed_id,
        ),
    ).one_or_none()


def _apply_filter(statement: Any, account_id: str, article_filter: ArticleFilter) -> Any:
    statement = statement.where(ArticleRow.account_id == account_id)
    scope = article_filter.scope
    if scope.kind is ScopeKind.GROUP:
        statement = statement.where(FeedRow.group_id == scope.target_id)
    elif scope.kind is ScopeKind.FEED:
        statement = statement.where(ArticleRow.feed_id == scope.target_id)
    return _apply_sub_filter(statement, article_filter.sub_filter)


def _apply_sub_filter(statement: Any, sub_filter: SubFilter) -> Any:
    if sub_filter is SubFilter.STARRED:
        return statement.where(col(ArticleRow.is_starred).is_(True))
    if sub_filter is SubFilter.UNREAD:
        return statement.where(col(ArticleRow.is_unread).is_(True))
    return statement


def _article_values(
    *,
    account_id: str,
    feed_id: str,
    articles: Iterable[SourceArticle],
) -> list[dict[str, Any]]:
    values: list[dict[str, Any]] = []
    seen: set[str] = set()
    created_at = to_naive_utc(utc_now())
    for article in articles:
        if article.external_id in seen:
            continue
        seen.add(article.external_id)
        values.append(
            {
                "article_id": str(uuid4()),
                "account_id": account_id,
                "feed_id": feed_id,
                "external_id": article.external_id,
                "title": article.title,
                "link": article.link,
                "summary": article.summary,
                "content": article.content,
                "published_at": to_naive_utc(article.published_at),
                "is_unread": True,
                "is_starred": False,
                "created_at": created_at,
            },
        )
    return values


def _is_feed_url_conflict(error: IntegrityError) -> bool:
    message = str(error.orig)
    return "feeds.account_id" in message and "feeds.url" in message


def _group_from_row(row: GroupRow) -> Group:
    return Group(group_id=row.group_id, account_id=row.account_id, name=row.name)


def _feed_from_row(row: FeedRow) -> Feed:
    return Feed(
        feed_id=row.feed_id,
        account_id=row.account_id,
        group_id=row.group_id,
        title=row.title,
        url=row.url,
        icon=row.icon,
        last_fetched_at=(
            to_utc_aware(row.last_fetched_at) if row.last_fetched_at is not None else None
        ),
        last_error=row.last_error,
    )


def _article_from_row(row: ArticleRow) -> Article:
    return Article(
        article_id=row.article_id,
        account_id=row.account_id,
        feed_id=row.feed_id,
        external_id=row.external_id,
        title=row.title,
        link=row.link,
        published_at=to_utc_aware(row.published_at),
        summary=row.summary,
        content=row.content,
        is_unread=bool(row.is_unread),
        is_starred=bool(row.is_starred),
    )
