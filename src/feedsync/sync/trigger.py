"""Periodic and manual entry points into the sync coordinator."""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import partial

from feedsync.config import SyncSettings
from feedsync.reader.models import SyncSummary
from feedsync.sync.coordinator import SyncCoordinator
from feedsync.sync.scheduler import ExistingWorkPolicy, PeriodicScheduler

logger = logging.getLogger(__name__)

WORK_NAME = "article.sync"
SYNC_TAG = "sync"


def work_name(account_id: str) -> str:
    return f"{WORK_NAME}:{account_id}"


class SyncTrigger:
    """Keeps one recurring sync schedule per account."""

    def __init__(
        self,
        *,
        coordinator: SyncCoordinator,
        scheduler: PeriodicScheduler,
        settings: SyncSettings | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.settings = settings or SyncSettings()

    def do_sync(self, account_id: str, *, initial_delay: timedelta = timedelta(0)) -> None:
        """(Re)register the periodic pass; a previous schedule for the account is replaced."""

        period = timedelta(minutes=self.settings.interval_minutes)
        self.scheduler.enqueue_unique_periodic(
            work_name(account_id),
            period,
            partial(self.coordinator.sync, account_id),
            tag=SYNC_TAG,
            policy=ExistingWorkPolicy.REPLACE,
            initial_delay=initial_delay,
        )
        logger.info("Scheduled sync for account %s every %s", account_id, period)

    def cancel(self, account_id: str) -> bool:
        return self.scheduler.cancel(work_name(account_id))

    def peek_work(self) -> int:
        """Count of queued or running sync schedules."""

        return self.scheduler.count_by_tag(SYNC_TAG)

    def sync_now(self, account_id: str) -> SyncSummary:
        return self.coordinator.sync(account_id)
