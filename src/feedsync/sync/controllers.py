"""Controllers for sync CLI commands."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from feedsync.config import Settings
from feedsync.reader.controllers import open_feed_source, open_repository, resolve_account_id
from feedsync.reader.models import SyncState, SyncSummary
from feedsync.reader.repository import SQLiteRepository
from feedsync.sync.coordinator import SyncCoordinator
from feedsync.sync.scheduler import PeriodicScheduler
from feedsync.sync.state import SyncStateManager
from feedsync.sync.trigger import SyncTrigger, work_name


@dataclass(slots=True)
class SyncNowCommand:
    """CLI inputs for one manual sync pass."""

    db_path: Path | None
    account_id: str | None
    max_workers: int | None


@dataclass(slots=True)
class SyncDaemonCommand:
    """CLI inputs for the periodic sync loop."""

    db_path: Path | None
    account_id: str | None
    interval_minutes: int | None
    max_workers: int | None
    duration_seconds: float | None


class SyncCliController:
    """Coordinates sync command execution."""

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        self._stop_event = stop_event or threading.Event()

    def run_now(
        self,
        command: SyncNowCommand,
        on_progress: Callable[[str], None] | None = None,
    ) -> list[str]:
        settings = _settings(command.db_path, command.max_workers, None)
        with _runtime(settings) as (repository, coordinator), PeriodicScheduler() as scheduler:
            account_id = resolve_account_id(repository, settings, command.account_id)
            trigger = SyncTrigger(
                coordinator=coordinator,
                scheduler=scheduler,
                settings=settings.sync,
            )
            remove = coordinator.state.add_listener(_progress_printer(on_progress))
            try:
                summary = trigger.sync_now(account_id)
            finally:
                remove()
        return _summary_lines(summary)

    def run_daemon(
        self,
        command: SyncDaemonCommand,
        on_progress: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Sync periodically until `stop()` is called or the duration elapses."""

        settings = _settings(command.db_path, command.max_workers, command.interval_minutes)
        with _runtime(settings) as (repository, coordinator), PeriodicScheduler() as scheduler:
            account_id = resolve_account_id(repository, settings, command.account_id)
            trigger = SyncTrigger(
                coordinator=coordinator,
                scheduler=scheduler,
                settings=settings.sync,
            )
            remove = coordinator.state.add_listener(_progress_printer(on_progress))
            try:
                trigger.do_sync(account_id)
                self._stop_event.wait(timeout=command.duration_seconds)
                runs = scheduler.runs(work_name(account_id))
            finally:
                trigger.cancel(account_id)
                remove()
        return [
            f"Sync daemon stopped: account={account_id} runs={runs} "
            f"interval_minutes={settings.sync.interval_minutes}",
        ]

    def stop(self) -> None:
        self._stop_event.set()


def _summary_lines(summary: SyncSummary) -> list[str]:
    if summary.coalesced:
        return [f"Sync already running for account {summary.account_id}; request coalesced."]
    lines = [
        "Sync pass completed: "
        f"account={summary.account_id} feeds={len(summary.feeds)} "
        f"inserted={summary.inserted_count} failed={summary.failed_count}",
    ]
    for feed in summary.feeds:
        status = f"error={feed.error}" if feed.failed else "ok"
        lines.append(f"  {feed.feed_id} {feed.feed_title} inserted={feed.inserted_count} {status}")
    return lines


def _progress_printer(on_progress: Callable[[str], None] | None) -> Callable[[SyncState], None]:
    def _print(state: SyncState) -> None:
        if on_progress is not None and state.is_syncing:
            on_progress(
                f"Syncing {state.synced_count}/{state.feed_count}: {state.current_feed_name}",
            )

    return _print


def _settings(
    db_path: Path | None,
    max_workers: int | None,
    interval_minutes: int | None,
) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    sync_settings = settings.sync
    if max_workers is not None:
        sync_settings = replace(sync_settings, max_workers=max_workers)
    if interval_minutes is not None:
        sync_settings = replace(sync_settings, interval_minutes=interval_minutes)
    settings = replace(settings, sync=sync_settings)
    settings.validate()
    return settings


@contextmanager
def _runtime(settings: Settings) -> Iterator[tuple[SQLiteRepository, SyncCoordinator]]:
    state = SyncStateManager()
    try:
        with open_repository(settings) as repository, open_feed_source(settings) as source:
            yield repository, SyncCoordinator(
                repository=repository,
                source=source,
                state=state,
                settings=settings.sync,
            )
    finally:
        state.close()
