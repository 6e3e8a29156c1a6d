"""Initial reader schema: accounts, groups, feeds, articles."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("account_id"),
    )

    op.create_table(
        "feed_groups",
        sa.Column("group_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.account_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("group_id"),
    )

    op.create_table(
        "feeds",
        sa.Column("feed_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("group_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("icon", sa.String(), nullable=True),
        sa.Column("last_fetched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.account_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["group_id"], ["feed_groups.group_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("feed_id"),
        sa.UniqueConstraint("account_id", "url", name="uq_feeds_account_url"),
    )

    op.create_table(
        "articles",
        sa.Column("article_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("feed_id", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("link", sa.String(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_unread", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_starred", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.account_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["feed_id"], ["feeds.feed_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("article_id"),
        sa.UniqueConstraint("feed_id", "external_id", name="uq_articles_feed_external"),
    )

    op.create_index("ix_feed_groups_account_id", "feed_groups", ["account_id"])
    op.create_index("ix_feeds_account_id", "feeds", ["account_id"])
    op.create_index("ix_feeds_group_id", "feeds", ["group_id"])
    op.create_index("ix_articles_account_id", "articles", ["account_id"])
    op.create_index("ix_articles_feed_id", "articles", ["feed_id"])
    op.create_index("ix_articles_published_at", "articles", ["published_at"])
    op.create_index("ix_articles_is_unread", "articles", ["is_unread"])
    op.create_index("ix_articles_is_starred", "articles", ["is_starred"])
    op.create_index(
        "idx_articles_account_published",
        "articles",
        ["account_id", "published_at"],
    )

    op.execute(
        sa.text(
            """
            INSERT INTO accounts(account_id, display_name, created_at)
            VALUES ('default_account', 'Local', CURRENT_TIMESTAMP)
            ON CONFLICT(account_id) DO NOTHING
            """,
        ),
    )


def downgrade() -> None:
    op.drop_index("idx_articles_account_published", table_name="articles")
    op.drop_index("ix_articles_is_starred", table_name="articles")
    op.drop_index("ix_articles_is_unread", table_name="articles")
    op.drop_index("ix_articles_published_at", table_name="articles")
    op.drop_index("ix_articles_feed_id", table_name="articles")
    op.drop_index("ix_articles_account_id", table_name="articles")
    op.drop_index("ix_feeds_group_id", table_name="feeds")
    op.drop_index("ix_feeds_account_id", table_name="feeds")
    op.drop_index("ix_feed_groups_account_id", table_name="feed_groups")
    op.drop_table("articles")
    op.drop_table("feeds")
    op.drop_table("feed_groups")
    op.drop_table("accounts")
