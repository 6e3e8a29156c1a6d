"""SQLModel ORM tables for reader storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class AccountRow(SQLModel, table=True):
    __tablename__ = "accounts"  # type: ignore[bad-override]

    account_id: str = Field(primary_key=True, index=True)
    display_name: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class GroupRow(SQLModel, table=True):
    __tablename__ = "feed_groups"  # type: ignore[bad-override]

    group_id: str = Field(primary_key=True)
    account_id: str = Field(
        sa_column=Column(
            ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    name: str


class FeedRow(SQLModel, table=True):
    __tablename__ = "feeds"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("account_id", "url", name="uq_feeds_account_url"),
    )

    feed_id: str = Field(primary_key=True)
    account_id: str = Field(
        sa_column=Column(
            ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    group_id: str = Field(
        sa_column=Column(
            ForeignKey("feed_groups.group_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    title: str
    url: str
    icon: str | None = None
    last_fetched_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    last_error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))


class ArticleRow(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("feed_id", "external_id", name="uq_articles_feed_external"),
        Index("idx_articles_account_published", "account_id", "published_at"),
    )

    article_id: str = Field(primary_key=True)
    account_id: str = Field(
        sa_column=Column(
            ForeignKey("accounts.account_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    feed_id: str = Field(
        sa_column=Column(
            ForeignKey("feeds.feed_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    external_id: str
    title: str
    link: str
    summary: str | None = Field(default=None, sa_column=Column(Text))
    content: str | None = Field(default=None, sa_column=Column(Text))
    published_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    is_unread: bool = Field(default=True, index=True)
    is_starred: bool = Field(default=False, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
