"""Commit notifications for streaming reads."""

from __future__ import annotations

import threading


class ChangeNotifier:
    """Monotonic version counter bumped after every committed write."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._version = 0
        self._closed = False

    @property
    def version(self) -> int:
        with self._condition:
            return self._version

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def bump(self) -> int:
        with self._condition:
            self._version += 1
            self._condition.notify_all()
            return self._version

    def wait_for_change(self, since: int, timeout: float | None = None) -> int:
        """Block until the version moves past `since`, the notifier closes, or timeout.

        Returns the current version; callers compare it with `since` to tell a
        change from a timeout.
        """

        with self._condition:
            self._condition.wait_for(
                lambda: self._version != since or self._closed,
                timeout=timeout,
            )
            return self._version

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()
