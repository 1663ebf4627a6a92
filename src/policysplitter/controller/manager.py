"""
Controller runtime.

Feeds Policy watch events into a work queue and drains it with a fixed pool
of asyncio workers, each calling the reconciler for one key at a time.
Retryable outcomes are requeued with exponential backoff; settled and
terminal outcomes reset the key's backoff.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from policysplitter.config import Settings
from policysplitter.controller.workqueue import WorkQueue
from policysplitter.core.errors import StoreError
from policysplitter.reconcile.reconciler import PolicyReconciler
from policysplitter.store.base import ObjectStore

logger = structlog.get_logger()


class Controller:
    """Watch-driven reconcile loop for Policy objects."""

    def __init__(
        self,
        store: ObjectStore,
        reconciler: PolicyReconciler,
        *,
        workers: int = 2,
        queue: WorkQueue | None = None,
        watch_retry_delay: float = 1.0,
        logger: Any = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.store = store
        self.reconciler = reconciler
        self.workers = workers
        self.queue = queue if queue is not None else WorkQueue()
        self.watch_retry_delay = watch_retry_delay
        self._logger = logger or structlog.get_logger()
        self._stop = asyncio.Event()

    @classmethod
    def from_settings(cls, store: ObjectStore, settings: Settings) -> Controller:
        return cls(
            store,
            PolicyReconciler(store),
            workers=settings.workers,
            queue=WorkQueue(
                base_delay=settings.requeue_base_delay,
                max_delay=settings.requeue_max_delay,
            ),
        )

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        """Run until ``stop`` is called, the task is cancelled or the watch fails."""
        self._logger.info("controller_starting", workers=self.workers)

        worker_tasks = [
            asyncio.create_task(self._worker(i), name=f"policy-worker-{i}")
            for i in range(self.workers)
        ]
        watch_task = asyncio.create_task(self._watch(), name="policy-watch")
        stop_task = asyncio.create_task(self._stop.wait())

        try:
            await asyncio.wait({watch_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if watch_task.done() and not watch_task.cancelled():
                watch_task.result()
        finally:
            self.queue.shutdown()
            for task in (watch_task, stop_task):
                task.cancel()
            await asyncio.gather(watch_task, stop_task, return_exceptions=True)
            await asyncio.gather(*worker_tasks, return_exceptions=True)
            self._logger.info("controller_stopped")

    async def _watch(self) -> None:
        while not self._stop.is_set():
            try:
                async for event in self.store.watch():
                    self._logger.debug("watch_event", type=event.type, key=str(event.key))
                    self.queue.add(event.key)
            except StoreError as exc:
                self._logger.warning("watch_failed", error=exc.message)
                await asyncio.sleep(self.watch_retry_delay)
                continue
            self._logger.info("watch_closed")
            return

    async def _worker(self, index: int) -> None:
        while True:
            key = await self.queue.get()
            if key is None:
                return
            try:
                result = await self.reconciler.reconcile(key)
                if result.requeue:
                    delay = self.queue.add_rate_limited(key)
                    self._logger.info(
                        "reconcile_requeued",
                        key=str(key),
                        worker=index,
                        delay=delay,
                        attempts=self.queue.num_requeues(key),
                    )
                else:
                    self.queue.forget(key)
            finally:
                self.queue.done(key)
