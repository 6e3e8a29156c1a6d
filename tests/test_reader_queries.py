from __future__ import annotations

import threading
from dataclasses import replace

import allure
import pytest

from feedsync.errors import NotFoundError
from feedsync.reader.models import ScopeKind, SubFilter
from feedsync.reader.queries import ReaderQueries
from feedsync.reader.repository import SQLiteRepository

pytestmark = [
    allure.epic("Reader"),
    allure.feature("Queries"),
]


@pytest.fixture()
def queries(repository) -> ReaderQueries:
    return ReaderQueries(repository, page_size=2)


@pytest.mark.parametrize(
    ("kwargs", "scope", "sub_filter"),
    [
        ({}, ScopeKind.ACCOUNT, SubFilter.ALL),
        ({"group_id": "g", "feed_id": "f"}, ScopeKind.GROUP, SubFilter.ALL),
        ({"feed_id": "f"}, ScopeKind.FEED, SubFilter.ALL),
        ({"is_starred": True, "is_unread": True}, ScopeKind.ACCOUNT, SubFilter.STARRED),
        ({"feed_id": "f", "is_unread": True}, ScopeKind.FEED, SubFilter.UNREAD),
    ],
)
def test_pull_articles_resolves_one_scope_and_sub_filter(
    queries, account_id, kwargs, scope, sub_filter
) -> None:
    pager = queries.pull_articles(account_id, **kwargs)

    assert pager.article_filter.scope.kind is scope
    assert pager.article_filter.sub_filter is sub_filter


def test_group_scope_wins_over_feed_scope(queries, add_feed, articles, account_id) -> None:
    news = add_feed(account_id, "https://example.com/a.xml", initial=articles(2))
    other = add_feed(account_id, "https://example.com/b.xml", initial=articles(3, prefix="b"))

    pager = queries.pull_articles(account_id, group_id=news.group_id, feed_id=other.feed_id)

    assert {row.article.feed_id for row in pager} == {news.feed_id}


def test_starred_wins_over_unread(
    repository, queries, coordinator, add_feed, articles, account_id
) -> None:
    add_feed(account_id, "https://example.com/a.xml", initial=articles(3))
    rows = list(queries.pull_articles(account_id))
    coordinator.update_article_info(
        account_id,
        replace(rows[0].article, is_starred=True, is_unread=False),
    )

    starred = list(queries.pull_articles(account_id, is_starred=True, is_unread=True))

    assert [row.article.article_id for row in starred] == [rows[0].article.article_id]


def test_pages_are_newest_first_with_neighbour_keys(
    queries, add_feed, articles, account_id
) -> None:
    add_feed(account_id, "https://example.com/a.xml", initial=articles(5))
    pager = queries.pull_articles(account_id)

    first = pager.load()
    second = pager.load(first.next_key)
    last = pager.load(second.next_key)

    assert [row.article.external_id for row in first.items] == ["item-4", "item-3"]
    assert (first.prev_key, first.next_key) == (None, 2)
    assert [row.article.external_id for row in second.items] == ["item-2", "item-1"]
    assert (second.prev_key, second.next_key) == (0, 4)
    assert [row.article.external_id for row in last.items] == ["item-0"]
    assert (last.prev_key, last.next_key) == (2, None)
    assert pager.count() == 5
    assert len(list(pager.pages())) == 3


def test_articles_carry_feed_title(queries, add_feed, articles, account_id) -> None:
    add_feed(account_id, "https://example.com/a.xml", title="Example", initial=articles(1))

    row = next(iter(queries.pull_articles(account_id)))

    assert row.feed_title == "Example"
    found = queries.find_article_by_id(account_id, row.article.article_id)
    assert found == row


def test_pull_groups_emits_again_after_change(queries, coordinator, account_id) -> None:
    stop = threading.Event()
    stream = queries.pull_groups(account_id, stop=stop, poll_seconds=0.05)

    assert next(stream) == []
    coordinator.add_group(account_id, "Tech")
    updated = next(stream)
    stop.set()

    assert [group.name for group in updated] == ["Tech"]


def test_pull_groups_sees_writes_from_another_connection(queries, db_path, account_id) -> None:
    stop = threading.Event()
    stream = queries.pull_groups(account_id, stop=stop, poll_seconds=0.05)
    assert next(stream) == []

    other = SQLiteRepository(db_path)
    try:
        other.insert_group(account_id, "Tech")
    finally:
        other.close()
    updated = next(stream)
    stop.set()

    assert [group.name for group in updated] == ["Tech"]


def test_data_version_moves_on_foreign_commit(repository, db_path, account_id) -> None:
    before = repository.data_version()

    other = SQLiteRepository(db_path)
    try:
        other.insert_group(account_id, "Tech")
    finally:
        other.close()

    assert repository.data_version() != before


def test_stream_ends_when_stopped(queries, account_id) -> None:
    stop = threading.Event()
    stream = queries.pull_feeds(account_id, stop=stop, poll_seconds=0.01)
    next(stream)
    stop.set()

    assert list(stream) == []


def test_pull_feeds_groups_feeds(queries, add_feed, account_id) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml", title="A")

    groups = next(queries.pull_feeds(account_id))

    assert len(groups) == 1
    assert groups[0].group.group_id == feed.group_id
    assert groups[0].feeds == [feed]


def test_pull_important_counts_unread(
    queries, coordinator, add_feed, articles, account_id
) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml", initial=articles(4))
    coordinator.mark_all_as_read(account_id, feed_id=feed.feed_id)

    assert next(queries.pull_important(account_id, is_unread=True)) == []
    totals = next(queries.pull_important(account_id))
    assert [(count.feed_id, count.important) for count in totals] == [(feed.feed_id, 4)]


def test_delete_feed_removes_its_articles(
    repository, queries, add_feed, articles, account_id
) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml", initial=articles(3))

    queries.delete_feed(account_id, feed.feed_id)

    assert queries.find_feed_by_id(account_id, feed.feed_id) is None
    orphans = repository._connection.execute(
        "SELECT COUNT(*) AS total FROM articles WHERE feed_id = ?",
        (feed.feed_id,),
    ).fetchone()
    assert orphans["total"] == 0


def test_delete_group_cascades_to_feeds_and_articles(
    repository, queries, add_feed, articles, account_id
) -> None:
    doomed = add_feed(account_id, "https://example.com/a.xml", initial=articles(2))
    kept = add_feed(account_id, "https://example.com/b.xml", initial=articles(1, prefix="b"))

    queries.delete_group(account_id, doomed.group_id)

    assert [group.group_id for group in repository.list_groups(account_id)] == [kept.group_id]
    assert [feed.feed_id for feed in repository.list_feeds(account_id)] == [kept.feed_id]
    assert [row.article.feed_id for row in queries.pull_articles(account_id)] == [kept.feed_id]


def test_mutations_on_missing_rows_raise_not_found(queries, add_feed, account_id) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml")

    with pytest.raises(NotFoundError):
        queries.delete_feed(account_id, "missing")
    with pytest.raises(NotFoundError):
        queries.delete_group(account_id, "missing")
    with pytest.raises(NotFoundError):
        queries.update_feed(replace(feed, group_id="missing"))
    with pytest.raises(NotFoundError):
        queries.update_feed(replace(feed, feed_id="missing"))


def test_update_feed_moves_between_groups(queries, coordinator, add_feed, account_id) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml")
    target = coordinator.add_group(account_id, "Elsewhere")

    queries.update_feed(replace(feed, group_id=target, title="Renamed"))

    stored = queries.find_feed_by_id(account_id, feed.feed_id)
    assert stored is not None
    assert (stored.group_id, stored.title) == (target, "Renamed")


def test_is_exist_checks_url_per_account(queries, add_feed, account_id) -> None:
    add_feed(account_id, "https://example.com/a.xml")

    assert queries.is_exist(account_id, "https://example.com/a.xml") is True
    assert queries.is_exist(account_id, "https://example.com/other.xml") is False
