"""
EventRecorder - fire-and-forget telemetry writes.

Request handlers hand records to ``submit``, which only enqueues. A small
pool of worker threads drains the bounded queue into the event store.

Key behaviors:
- ``submit`` never blocks and never raises
- Full queue applies the configured drop policy (drop_newest / drop_oldest)
- A failed store write is logged and counted, never retried
- No ordering guarantee between a response and its record being stored
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum

from .models import EventRecord
from .ports import EventStorePort

logger = logging.getLogger(__name__)


class DropPolicy(str, Enum):
    """What to discard when the queue is full."""

    DROP_NEWEST = "drop_newest"
    DROP_OLDEST = "drop_oldest"


@dataclass(frozen=True)
class RecorderConfig:
    """Recorder configuration."""

    queue_capacity: int = 1000
    workers: int = 2
    drop_policy: DropPolicy = DropPolicy.DROP_NEWEST
    poll_interval_seconds: float = 0.25
    shutdown_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class RecorderStats:
    """Snapshot of recorder counters."""

    submitted: int
    written: int
    failed: int
    dropped: int
    queued: int
    running: bool


class EventRecorder:
    """
    Bounded queue + worker pool feeding the event store.

    Workers are daemon threads, so an unclean interpreter exit loses at most
    what is still queued.
    """

    def __init__(
        self,
        store: EventStorePort,
        config: RecorderConfig | None = None,
    ) -> None:
        self._store = store
        self._config = config or RecorderConfig()
        self._queue: queue.Queue[EventRecord] = queue.Queue(maxsize=self._config.queue_capacity)
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._counter_lock = threading.Lock()
        self._submitted = 0
        self._written = 0
        self._failed = 0
        self._dropped = 0

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the worker pool."""
        if self._threads:
            return

        self._stop_event.clear()
        for i in range(self._config.workers):
            thread = threading.Thread(
                target=self._drain_loop,
                name=f"event-recorder-{i}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info(
            "Event recorder started (workers=%d, capacity=%d, policy=%s)",
            self._config.workers,
            self._config.queue_capacity,
            self._config.drop_policy.value,
        )

    def stop(self, drain: bool = True) -> None:
        """
        Stop the worker pool.

        With ``drain`` the queue is flushed first, bounded by the configured
        shutdown timeout.
        """
        if not self._threads:
            return

        if drain:
            self.flush(timeout=self._config.shutdown_timeout_seconds)

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=self._config.shutdown_timeout_seconds)
        self._threads = []

        remaining = self._queue.qsize()
        if remaining:
            logger.warning("Event recorder stopped with %d unwritten events", remaining)
        else:
            logger.info("Event recorder stopped")

    @property
    def is_running(self) -> bool:
        return bool(self._threads)

    # --- Write Path ---

    def submit(self, record: EventRecord) -> bool:
        """
        Enqueue a record for asynchronous storage.

        Returns False when the record (or, under drop_oldest, an older one)
        was discarded because the queue is full.
        """
        with self._counter_lock:
            self._submitted += 1

        try:
            self._queue.put_nowait(record)
            return True
        except queue.Full:
            pass

        if self._config.drop_policy == DropPolicy.DROP_OLDEST:
            try:
                self._queue.get_nowait()
                self._queue.task_done()
            except queue.Empty:
                pass
            self._count_drop()
            try:
                self._queue.put_nowait(record)
            except queue.Full:
                # Another producer took the freed slot.
                self._count_drop()
            return False

        self._count_drop()
        return False

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until every queued record has been processed.

        Returns False if the timeout expired first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def stats(self) -> RecorderStats:
        with self._counter_lock:
            return RecorderStats(
                submitted=self._submitted,
                written=self._written,
                failed=self._failed,
                dropped=self._dropped,
                queued=self._queue.qsize(),
                running=self.is_running,
            )

    # --- Internals ---

    def _count_drop(self) -> None:
        with self._counter_lock:
            self._dropped += 1
            dropped = self._dropped
        logger.warning(
            "Analytics queue full (capacity=%d); dropped event (total dropped: %d)",
            self._config.queue_capacity,
            dropped,
        )

    def _drain_loop(self) -> None:
        """Worker loop: take one record, write it, repeat until stopped."""
        while not self._stop_event.is_set():
            try:
                record = self._queue.get(timeout=self._config.poll_interval_seconds)
            except queue.Empty:
                continue

            try:
                self._store.append(record)
            except Exception:
                with self._counter_lock:
                    self._failed += 1
                logger.exception(
                    "Analytics write failed for %s event %s",
                    record.event_kind.value,
                    record.id,
                )
            else:
                with self._counter_lock:
                    self._written += 1
            finally:
                self._queue.task_done()
