from pathlib import Path

import allure

from feedsync.reader.repository import SQLiteRepository

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = SQLiteRepository(tmp_path / "migrations.db")
    repository.init_schema()

    row = repository._connection.execute(
        "SELECT version_num FROM alembic_version LIMIT 1"
    ).fetchone()
    assert row is not None
    assert str(row["version_num"]) == "20261018_0001"

    account = repository._connection.execute(
        "SELECT display_name FROM accounts WHERE account_id = 'default_account'"
    ).fetchone()
    assert account is not None
    assert str(account["display_name"]) == "Local"

    tables = repository._connection.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name IN ('accounts', 'feed_groups', 'feeds', 'articles')
        ORDER BY name
        """
    ).fetchall()
    assert [str(row["name"]) for row in tables] == [
        "accounts",
        "articles",
        "feed_groups",
        "feeds",
    ]
    repository.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "twice.db"
    first = SQLiteRepository(db_path)
    first.init_schema()
    first.close()

    second = SQLiteRepository(db_path)
    second.init_schema()

    assert [account.account_id for account in second.list_accounts()] == ["default_account"]
    second.close()
