"""Database Log Sink — batched, asynchronous writer for the logs table.

Invariants:
    - enqueue() is synchronous and never touches the database
    - A batch is written when batch_size entries are waiting or every flush_interval seconds
    - A failed write puts the batch back at the head of the queue and pauses
      flushing for retry_delay seconds
    - The queue is bounded (MAX_QUEUE): when full, the oldest entries are dropped
    - stop() drains whatever is left with a final flush

Design Decisions:
    - Own session per batch via session_scope (db_manager.session): log writes must not
      ride on, or roll back with, request transactions
    - Started/stopped from the FastAPI lifespan only when DB logging is enabled
"""

import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable

from app.models.log_entry import LogEntry

logger = logging.getLogger(__name__)

MAX_QUEUE = 10_000

_COLUMNS = {c.name for c in LogEntry.__table__.columns} - {"id", "created_at"}


class DatabaseLogSink:
    """Queue log entries in memory and persist them in batches."""

    def __init__(
        self,
        session_scope: Callable[[], Any],
        batch_size: int = 50,
        flush_interval: float = 5.0,
        retry_delay: float = 10.0,
        defaults: dict | None = None,
    ):
        self._session_scope = session_scope
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.retry_delay = retry_delay
        self.defaults = defaults or {}
        self._queue: deque[dict] = deque(maxlen=MAX_QUEUE)
        self._lock = asyncio.Lock()
        self._wake: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._paused_until = 0.0
        self._stopped = False

    @property
    def pending(self) -> int:
        return len(self._queue)

    def enqueue(self, entry: dict) -> None:
        row = {**self.defaults, **entry}
        row.setdefault("timestamp", datetime.now(timezone.utc))
        self._queue.append(row)
        if len(self._queue) >= self.batch_size and self._wake and self._loop:
            self._loop.call_soon_threadsafe(self._wake.set)

    async def flush(self) -> int:
        """Write one batch. Returns the number of rows persisted."""
        async with self._lock:
            if not self._queue:
                return 0
            batch = [
                self._queue.popleft()
                for _ in range(min(self.batch_size, len(self._queue)))
            ]
            try:
                async with self._session_scope() as db:
                    db.add_all([LogEntry(**_to_columns(e)) for e in batch])
                    await db.commit()
            except Exception as e:
                self._queue.extendleft(reversed(batch))
                self._paused_until = asyncio.get_running_loop().time() + self.retry_delay
                logger.warning(
                    f"Log sink flush failed, retrying in {self.retry_delay}s: {e}",
                )
                return 0
            return len(batch)

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._stopped = False
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stopped = True
        if self._wake:
            self._wake.set()
        if self._task:
            await self._task
            self._task = None
        self._paused_until = 0.0
        while self._queue and await self.flush():
            pass

    async def _run(self) -> None:
        while not self._stopped:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopped:
                break
            if asyncio.get_running_loop().time() < self._paused_until:
                continue
            while self._queue and await self.flush():
                pass


def _to_columns(entry: dict) -> dict:
    row = {k: v for k, v in entry.items() if k in _COLUMNS}
    data = row.get("data")
    if data is not None and not isinstance(data, str):
        row["data"] = json.dumps(data, default=str)
    return row


# Module-level sink (initialized on startup when DB logging is enabled)
log_sink: DatabaseLogSink | None = None


def init_log_sink(session_scope: Callable[[], Any], **kwargs) -> DatabaseLogSink:
    global log_sink
    log_sink = DatabaseLogSink(session_scope, **kwargs)
    return log_sink


def get_log_sink() -> DatabaseLogSink | None:
    return log_sink
