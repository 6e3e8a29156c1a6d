from __future__ import annotations

import threading
from datetime import timedelta

import allure
import pytest

from feedsync.config import SyncSettings
from feedsync.sync.scheduler import ExistingWorkPolicy, PeriodicScheduler
from feedsync.sync.trigger import SyncTrigger, work_name

pytestmark = [
    allure.epic("Sync"),
    allure.feature("Periodic Trigger"),
]

_HOUR = timedelta(hours=1)


@pytest.fixture()
def scheduler():
    with PeriodicScheduler() as scheduler:
        yield scheduler


def test_task_runs_immediately_and_then_periodically(scheduler) -> None:
    ran = threading.Semaphore(0)

    scheduler.enqueue_unique_periodic("tick", timedelta(milliseconds=20), ran.release, tag="t")

    assert ran.acquire(timeout=2)
    assert ran.acquire(timeout=2)
    assert scheduler.runs("tick") >= 1


def test_initial_delay_postpones_first_run(scheduler) -> None:
    ran = threading.Event()

    scheduler.enqueue_unique_periodic("later", _HOUR, ran.set, initial_delay=_HOUR)

    assert ran.wait(timeout=0.1) is False


def test_replace_keeps_a_single_schedule(scheduler) -> None:
    for _ in range(3):
        assert scheduler.enqueue_unique_periodic(
            "sync",
            _HOUR,
            lambda: None,
            tag="sync",
            initial_delay=_HOUR,
        )

    assert scheduler.count_by_tag("sync") == 1


def test_keep_policy_leaves_existing_schedule(scheduler) -> None:
    calls: list[str] = []
    scheduler.enqueue_unique_periodic(
        "sync",
        _HOUR,
        lambda: calls.append("first"),
        initial_delay=_HOUR,
    )

    kept = scheduler.enqueue_unique_periodic(
        "sync",
        _HOUR,
        lambda: calls.append("second"),
        policy=ExistingWorkPolicy.KEEP,
    )

    assert kept is False
    assert calls == []


def test_cancel_removes_schedule(scheduler) -> None:
    scheduler.enqueue_unique_periodic("sync", _HOUR, lambda: None, tag="sync", initial_delay=_HOUR)

    assert scheduler.cancel("sync") is True
    assert scheduler.cancel("sync") is False
    assert scheduler.count_by_tag("sync") == 0


def test_failing_task_keeps_schedule_alive(scheduler) -> None:
    attempts = threading.Semaphore(0)

    def _explode() -> None:
        attempts.release()
        raise RuntimeError("boom")

    scheduler.enqueue_unique_periodic("flaky", timedelta(milliseconds=20), _explode)

    assert attempts.acquire(timeout=2)
    assert attempts.acquire(timeout=2)


def test_non_positive_period_is_rejected(scheduler) -> None:
    with pytest.raises(ValueError, match="period"):
        scheduler.enqueue_unique_periodic("bad", timedelta(0), lambda: None)


def test_shutdown_rejects_new_work() -> None:
    scheduler = PeriodicScheduler()
    scheduler.shutdown()

    with pytest.raises(RuntimeError):
        scheduler.enqueue_unique_periodic("late", _HOUR, lambda: None)


def test_do_sync_replaces_previous_schedule(coordinator, scheduler, account_id) -> None:
    trigger = SyncTrigger(
        coordinator=coordinator,
        scheduler=scheduler,
        settings=SyncSettings(interval_minutes=60),
    )

    trigger.do_sync(account_id, initial_delay=_HOUR)
    trigger.do_sync(account_id, initial_delay=_HOUR)

    assert trigger.peek_work() == 1
    assert trigger.cancel(account_id) is True
    assert trigger.peek_work() == 0


def test_do_sync_runs_a_pass(
    coordinator, scheduler, source, add_feed, articles, account_id
) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml")
    source.responses[feed.url] = articles(2)
    finished = threading.Event()
    coordinator.state.add_listener(
        lambda state: finished.set() if state.is_not_syncing and source.calls else None,
    )
    trigger = SyncTrigger(coordinator=coordinator, scheduler=scheduler)

    trigger.do_sync(account_id)

    assert finished.wait(timeout=5)
    assert source.calls == [feed.url]
    assert work_name(account_id) == "article.sync:default_account"


def test_sync_now_runs_in_caller_thread(
    coordinator, scheduler, source, add_feed, articles, account_id
) -> None:
    feed = add_feed(account_id, "https://example.com/a.xml")
    source.responses[feed.url] = articles(1)
    trigger = SyncTrigger(coordinator=coordinator, scheduler=scheduler)

    summary = trigger.sync_now(account_id)

    assert summary.inserted_count == 1
    assert trigger.peek_work() == 0
