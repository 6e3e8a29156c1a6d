from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from feedsync import __version__
from feedsync.main import feedsync
from feedsync.reader.models import Feed, SourceArticle
from feedsync.reader.sources.rss import FeedDocument, RssFeedSource

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Reader & Sync Commands"),
]

_FEED_URL = "https://example.com/feed.xml"


def _article(index: int) -> SourceArticle:
    return SourceArticle(
        external_id=f"id-{index}",
        title=f"Item {index}",
        link=f"https://example.com/{index}",
        published_at=datetime(2026, 10, index, 9, 0, tzinfo=UTC),
    )


@pytest.fixture(autouse=True)
def offline_feeds(monkeypatch) -> None:
    monkeypatch.delenv("FEEDSYNC_ACCOUNT_ID", raising=False)
    monkeypatch.delenv("FEEDSYNC_DB_PATH", raising=False)

    def _fetch_document(_self: RssFeedSource, url: str) -> FeedDocument:
        return FeedDocument(url=url, title="Example News", articles=[_article(1), _article(2)])

    def _fetch(_self: RssFeedSource, _feed: Feed) -> list[SourceArticle]:
        return [_article(1), _article(2), _article(3)]

    monkeypatch.setattr(RssFeedSource, "fetch_document", _fetch_document)
    monkeypatch.setattr(RssFeedSource, "fetch", _fetch)


def _invoke(runner: CliRunner, db_path: Path, *args: str):
    group, command, *rest = args
    return runner.invoke(feedsync, [group, command, "--db-path", str(db_path), *rest])


def _create_group(runner: CliRunner, db_path: Path, name: str = "Tech") -> str:
    result = _invoke(runner, db_path, "group", "add", "--name", name)
    assert result.exit_code == 0, result.output
    return result.output.strip().rsplit(" ", 1)[-1]


def test_version_option() -> None:
    result = CliRunner().invoke(feedsync, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_subscribe_list_and_sync_flow(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    group_id = _create_group(runner, db_path)

    subscribed = _invoke(
        runner, db_path, "feed", "subscribe", "--url", _FEED_URL, "--group-id", group_id
    )
    assert subscribed.exit_code == 0, subscribed.output
    assert "Example News articles=2" in subscribed.output

    groups = _invoke(runner, db_path, "group", "list")
    assert f"{group_id} Tech feeds=1" in groups.output
    assert f"<{_FEED_URL}>" in groups.output

    synced = _invoke(runner, db_path, "sync", "now")
    assert synced.exit_code == 0, synced.output
    assert "Syncing 0/1: Example News" in synced.output
    assert (
        "Sync pass completed: account=default_account feeds=1 inserted=1 failed=0"
        in synced.output
    )

    listed = _invoke(runner, db_path, "article", "list", "--page-size", "2")
    assert listed.exit_code == 0, listed.output
    assert "Articles: total=3 page=1 scope=account filter=all" in listed.output
    assert "Example News: Item 3" in listed.output
    assert "Item 1" not in listed.output
    assert "More: --page 2" in listed.output


def test_duplicate_subscribe_fails(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    group_id = _create_group(runner, db_path)
    args = ("feed", "subscribe", "--url", _FEED_URL, "--group-id", group_id)

    assert _invoke(runner, db_path, *args).exit_code == 0
    duplicate = _invoke(runner, db_path, *args)

    assert duplicate.exit_code == 1
    assert "already subscribed" in duplicate.output


def test_mark_and_read_all(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    group_id = _create_group(runner, db_path)
    _invoke(runner, db_path, "feed", "subscribe", "--url", _FEED_URL, "--group-id", group_id)
    listed = _invoke(runner, db_path, "article", "list")
    article_id = listed.output.splitlines()[1].split()[1]

    marked = _invoke(runner, db_path, "article", "mark", "--article-id", article_id, "--star")
    assert marked.exit_code == 0, marked.output
    assert marked.output.startswith("[*U]")

    starred = _invoke(runner, db_path, "article", "list", "--starred", "--unread")
    assert "total=1" in starred.output
    assert "filter=starred" in starred.output

    read_all = _invoke(runner, db_path, "article", "read-all", "--group-id", group_id)
    assert "Marked as read: 2" in read_all.output

    counts = runner.invoke(feedsync, ["counts", "--db-path", str(db_path), "--unread"])
    assert counts.exit_code == 0
    assert "No articles." in counts.output


def test_delete_group_removes_feeds(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    group_id = _create_group(runner, db_path)
    _invoke(runner, db_path, "feed", "subscribe", "--url", _FEED_URL, "--group-id", group_id)

    deleted = _invoke(runner, db_path, "group", "delete", "--group-id", group_id)

    assert deleted.exit_code == 0, deleted.output
    assert "No feeds." in _invoke(runner, db_path, "feed", "list").output
    assert "total=0" in _invoke(runner, db_path, "article", "list").output


def test_unknown_account_is_rejected(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"

    result = _invoke(CliRunner(), db_path, "group", "list", "--account", "ghost")

    assert result.exit_code == 1
    assert "Account not found: ghost" in result.output


def test_account_add_then_use(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    added = _invoke(runner, db_path, "account", "add", "--id", "work", "--name", "Work")
    groups = _invoke(runner, db_path, "group", "list", "--account", "work")

    assert "Account: work (Work)" in added.output
    assert groups.exit_code == 0
    assert "No groups." in groups.output
