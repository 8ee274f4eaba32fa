"""Database Log Sink and DatabaseLogHandler.

Invariants:
    - A failed flush keeps the batch queued (nothing lost) and pauses flushing
    - stop() drains the queue

Tests cover:
    - flush writes at most batch_size rows; dict data JSON-encoded; unknown keys dropped
    - failing session_scope → rows stay queued in order
    - start/stop drains pending entries
    - handler maps levels, exceptions, and skips the sink's own records
"""

import json
import logging
import sys
from contextlib import asynccontextmanager

from sqlalchemy import select

from app.infrastructure.log_sink import DatabaseLogSink
from app.infrastructure.observability import DatabaseLogHandler, db_level
from app.models.log_entry import LogEntry


async def _rows(factory) -> list[LogEntry]:
    async with factory() as db:
        result = await db.execute(select(LogEntry).order_by(LogEntry.message))
        return list(result.scalars().all())


async def test_flush_writes_one_batch(fake_db_manager, test_session_factory):
    sink = DatabaseLogSink(
        fake_db_manager.session, batch_size=2, defaults={"environment": "test"},
    )
    sink.enqueue({"level": "info", "message": "a", "data": {"k": 1}, "bogus": "x"})
    sink.enqueue({"level": "warn", "message": "b"})
    sink.enqueue({"level": "error", "message": "c"})

    written = await sink.flush()

    assert written == 2
    assert sink.pending == 1
    rows = await _rows(test_session_factory)
    assert [r.message for r in rows] == ["a", "b"]
    assert json.loads(rows[0].data) == {"k": 1}
    assert rows[0].environment == "test"
    assert rows[0].service == "cartel-api"


async def test_failed_flush_requeues(test_session_factory):
    @asynccontextmanager
    async def broken_scope():
        raise RuntimeError("database down")
        yield

    sink = DatabaseLogSink(broken_scope, batch_size=10, retry_delay=60)
    sink.enqueue({"level": "info", "message": "first"})
    sink.enqueue({"level": "info", "message": "second"})

    assert await sink.flush() == 0
    assert [e["message"] for e in sink._queue] == ["first", "second"]
    assert await _rows(test_session_factory) == []


async def test_stop_drains_queue(fake_db_manager, test_session_factory):
    sink = DatabaseLogSink(fake_db_manager.session, batch_size=2, flush_interval=60)
    sink.start()
    for i in range(5):
        sink.enqueue({"level": "info", "message": f"m{i}"})

    await sink.stop()

    assert sink.pending == 0
    assert len(await _rows(test_session_factory)) == 5


def test_level_mapping():
    assert db_level(logging.DEBUG) == "info"
    assert db_level(logging.WARNING) == "warn"
    assert db_level(logging.ERROR) == "error"
    assert db_level(logging.CRITICAL) == "fatal"


class _ListSink:
    def __init__(self):
        self.entries = []

    def enqueue(self, entry):
        self.entries.append(entry)


def _record(name, level, msg, exc_info=None, **extra):
    record = logging.LogRecord(name, level, __file__, 1, msg, None, exc_info)
    record.__dict__.update(extra)
    return record


def test_handler_forwards_records():
    sink = _ListSink()
    handler = DatabaseLogHandler(sink)
    try:
        raise ValueError("bad input")
    except ValueError:
        exc_info = sys.exc_info()

    handler.emit(_record(
        "app.api.routes.projects", logging.ERROR, "boom",
        exc_info=exc_info, path="/api/v1/projects", status_code=500,
    ))

    [entry] = sink.entries
    assert entry["level"] == "error"
    assert entry["category"] == "app.api.routes.projects"
    assert entry["path"] == "/api/v1/projects"
    assert entry["error_name"] == "ValueError"
    assert "bad input" in entry["error_stack"]
    assert entry["data"] == {"path": "/api/v1/projects", "status_code": 500}


def test_handler_ignores_sink_records():
    sink = _ListSink()
    DatabaseLogHandler(sink).emit(
        _record("app.infrastructure.log_sink", logging.WARNING, "flush failed"),
    )
    assert sink.entries == []
