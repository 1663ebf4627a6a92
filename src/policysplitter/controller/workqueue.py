from __future__ import annotations

import asyncio

from policysplitter.domain.models import ObjectKey


class WorkQueue:
    """
    asyncio work queue of object keys.

    A key waits in the queue at most once. A key added while a worker holds
    it is parked and re-queued when the worker calls ``done``, so one key is
    never reconciled by two workers at the same time. Failed keys are
    re-added with exponential backoff via ``add_rate_limited``.
    """

    def __init__(self, *, base_delay: float = 0.5, max_delay: float = 60.0) -> None:
        self._queue: asyncio.Queue[ObjectKey | None] = asyncio.Queue()
        self._queued: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._dirty: set[ObjectKey] = set()
        self._failures: dict[ObjectKey, int] = {}
        self._timers: dict[ObjectKey, asyncio.TimerHandle] = {}
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queued)

    @property
    def idle(self) -> bool:
        """Nothing queued, in flight or waiting on a backoff timer."""
        return not (self._queued or self._processing or self._timers)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: ObjectKey) -> None:
        if self._shutting_down:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def add_after(self, key: ObjectKey, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        if key in self._timers:
            return
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self._fire, key)

    def add_rate_limited(self, key: ObjectKey) -> float:
        """Re-add ``key`` after its backoff delay; returns the delay used."""
        delay = self.requeue_delay(key)
        self._failures[key] = self._failures.get(key, 0) + 1
        self.add_after(key, delay)
        return delay

    def requeue_delay(self, key: ObjectKey) -> float:
        failures = self._failures.get(key, 0)
        return min(self._base_delay * (2**failures), self._max_delay)

    def num_requeues(self, key: ObjectKey) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: ObjectKey) -> None:
        """Reset the backoff of ``key`` after a successful reconcile."""
        self._failures.pop(key, None)

    async def get(self) -> ObjectKey | None:
        """Next key to process, or None once the queue is shut down."""
        key = await self._queue.get()
        if key is None:
            # Wake the next waiting worker too
            self._queue.put_nowait(None)
            return None
        self._queued.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: ObjectKey) -> None:
        self._processing.discard(key)
        if key in self._dirty:
            self._dirty.discard(key)
            self.add(key)

    def shutdown(self) -> None:
        self._shutting_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._queue.put_nowait(None)

    def _fire(self, key: ObjectKey) -> None:
        self._timers.pop(key, None)
        self.add(key)
