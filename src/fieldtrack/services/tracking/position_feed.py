"""Live position feed merging a push channel and a polling fallback."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Optional, Protocol

from ...config import settings
from ...models.domain import PositionRecord
from .errors import TransportError

logger = logging.getLogger(__name__)

PositionCallback = Callable[[PositionRecord], None]
Unsubscribe = Callable[[], Awaitable[None]]


class PositionSource(Protocol):
    """Collaborator that knows where an entity currently is.

    ``subscribe`` is optional; sources without push delivery are polled only.
    Implementations raise :class:`TransportError` for fetch failures.
    """

    async def fetch_latest(self, entity_id: str) -> Optional[PositionRecord]:
        ...


class PositionCell:
    """Holds the newest accepted position and fans it out to subscribers.

    Acceptance is a compare-and-set on ``observed_at`` under a single lock, and
    subscribers are notified inside the same critical section, so every
    subscriber sees records in strictly increasing ``observed_at`` order no
    matter which channel or thread delivered them.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._record: PositionRecord | None = None
        self._subscribers: list[PositionCallback] = []

    def latest(self) -> PositionRecord | None:
        return self._record

    def subscribe(self, callback: PositionCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def offer(self, record: PositionRecord | None) -> bool:
        """Accept ``record`` if it is newer than the held one; return whether it was accepted."""
        if record is None or not record.coordinate.is_valid():
            logger.debug("Discarding position without a usable coordinate")
            return False

        with self._lock:
            current = self._record
            if current is not None and record.observed_at <= current.observed_at:
                logger.debug(
                    f"Discarding stale position observed at {record.observed_at.isoformat()} "
                    f"(holding {current.observed_at.isoformat()})"
                )
                return False
            self._record = record

            for callback in list(self._subscribers):
                # A subscriber may have pushed a newer record re-entrantly.
                if self._record is not record:
                    break
                try:
                    callback(record)
                except Exception:
                    logger.exception("Position subscriber failed")
        return True


class PositionFeed:
    """Most recent position of one tracked entity.

    Two channels write into one :class:`PositionCell`: the source's push
    subscription (when it offers one) and a poll task running every
    ``poll_interval_ms``. ``on_foreground`` adds an out-of-band fetch.
    """

    def __init__(
        self,
        entity_id: str,
        source: PositionSource,
        *,
        poll_interval_ms: int | None = None,
    ) -> None:
        self.entity_id = entity_id
        self._source = source
        self.poll_interval_ms = poll_interval_ms if poll_interval_ms is not None else settings.poll_interval_ms
        self._cell = PositionCell()
        self._poll_task: asyncio.Task | None = None
        self._unsubscribe_push: Unsubscribe | None = None
        self._foreground_tasks: set[asyncio.Task] = set()

    @property
    def attached(self) -> bool:
        return self._poll_task is not None

    @property
    def push_connected(self) -> bool:
        return self._unsubscribe_push is not None

    def latest(self) -> PositionRecord | None:
        return self._cell.latest()

    def subscribe(self, callback: PositionCallback) -> Callable[[], None]:
        return self._cell.subscribe(callback)

    def offer(self, record: PositionRecord | None) -> bool:
        """Entry point for pushed records."""
        return self._cell.offer(record)

    async def refresh(self) -> bool:
        """Fetch the current position now and apply it through the acceptance rule."""
        try:
            record = await self._source.fetch_latest(self.entity_id)
        except TransportError as exc:
            logger.warning(f"Position fetch for {self.entity_id} failed, retrying next tick: {exc}")
            return False
        if record is None:
            return False
        return self._cell.offer(record)

    def on_foreground(self) -> asyncio.Task:
        """Schedule an immediate fetch after the consumer regains the foreground."""
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._foreground_tasks.add(task)
        task.add_done_callback(self._foreground_tasks.discard)
        return task

    async def attach(self) -> None:
        if self._poll_task is not None:
            return
        try:
            subscribe = getattr(self._source, "subscribe", None)
            if subscribe is not None:
                try:
                    self._unsubscribe_push = await subscribe(self.entity_id, self.offer)
                except TransportError as exc:
                    logger.info(f"Push channel unavailable for {self.entity_id}, polling only: {exc}")
            self._poll_task = asyncio.get_running_loop().create_task(
                self._poll_loop(), name=f"position-poll-{self.entity_id}"
            )
            logger.info(f"Position feed attached for {self.entity_id} (poll every {self.poll_interval_ms} ms)")
        except BaseException:
            await self.detach()
            raise

    async def detach(self) -> None:
        poll_task, self._poll_task = self._poll_task, None
        unsubscribe, self._unsubscribe_push = self._unsubscribe_push, None
        tasks = [task for task in (poll_task, *self._foreground_tasks) if task is not None]
        self._foreground_tasks.clear()
        try:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            if unsubscribe is not None:
                try:
                    await unsubscribe()
                except Exception as exc:
                    logger.warning(f"Failed to remove push subscription for {self.entity_id}: {exc}")
            logger.info(f"Position feed detached for {self.entity_id}")

    async def __aenter__(self) -> "PositionFeed":
        await self.attach()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.detach()

    async def _poll_loop(self) -> None:
        interval = self.poll_interval_ms / 1000
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception(f"Unexpected error polling position for {self.entity_id}")
            await asyncio.sleep(interval)
