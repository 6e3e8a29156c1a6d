"""Shared, observable progress of the running sync pass."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from typing import cast

from feedsync.reader.models import SyncState

logger = logging.getLogger(__name__)

SyncStateTransform = Callable[[SyncState], SyncState]
SyncStateListener = Callable[[SyncState], None]

_CLOSED = object()


class SyncStateSubscription:
    """Iterator over published states, starting with the latest one."""

    def __init__(self, manager: SyncStateManager, initial: SyncState) -> None:
        self._manager = manager
        self._queue: queue.SimpleQueue[object] = queue.SimpleQueue()
        self._closed = False
        self._queue.put(initial)

    def __iter__(self) -> Iterator[SyncState]:
        return self

    def __next__(self) -> SyncState:
        item = self._queue.get()
        if item is _CLOSED:
            self._queue.put(_CLOSED)
            raise StopIteration
        return cast(SyncState, item)

    def get(self, timeout: float | None = None) -> SyncState | None:
        """Next state, or None once closed or when `timeout` elapses."""

        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._queue.put(_CLOSED)
            return None
        return cast(SyncState, item)

    def close(self) -> None:
        self._manager._unsubscribe(self)
        self._end()

    def _deliver(self, state: SyncState) -> None:
        if not self._closed:
            self._queue.put(state)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(_CLOSED)

    def __enter__(self) -> SyncStateSubscription:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class SyncStateManager:
    """Holds one `SyncState` behind a mutex and republishes every change.

    Transforms and deliveries happen under the same reentrant lock, so every
    subscriber receives the states in the order the transforms were applied,
    and a listener may itself call back into the manager.
    """

    def __init__(self, initial: SyncState | None = None) -> None:
        self._lock = threading.RLock()
        self._state = initial or SyncState()
        self._subscriptions: list[SyncStateSubscription] = []
        self._listeners: list[SyncStateListener] = []
        self._closed = False

    @property
    def state(self) -> SyncState:
        # Rebinding a reference is atomic; readers never wait for writers.
        return self._state

    def update_sync_state(self, transform: SyncStateTransform) -> SyncState:
        with self._lock:
            updated = transform(self._state)
            self._state = updated
            for subscription in list(self._subscriptions):
                subscription._deliver(updated)
            for listener in list(self._listeners):
                try:
                    listener(updated)
                except Exception:
                    logger.exception("Sync state listener failed")
            return updated

    def reset(self) -> SyncState:
        return self.update_sync_state(lambda _: SyncState())

    def subscribe(self) -> SyncStateSubscription:
        with self._lock:
            subscription = SyncStateSubscription(self, self._state)
            if self._closed:
                subscription._end()
            else:
                self._subscriptions.append(subscription)
            return subscription

    def add_listener(self, listener: SyncStateListener) -> Callable[[], None]:
        """Call `listener` with the latest state now and on every update; returns a remover.

        Listeners run on the updating thread while the state lock is held. They
        may call `update_sync_state` or the remover, but must not block on
        another thread that needs this manager.
        """

        with self._lock:
            self._listeners.append(listener)
            listener(self._state)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def close(self) -> None:
        with self._lock:
            self._closed = True
            subscriptions, self._subscriptions = self._subscriptions, []
            self._listeners.clear()
        for subscription in subscriptions:
            subscription._end()

    def _unsubscribe(self, subscription: SyncStateSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
