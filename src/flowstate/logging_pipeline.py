"""Queue-backed logging for flowstate commands.

Records are handed to a bounded queue on the calling thread and written by a
``QueueListener`` thread, so snapshot writes never block on a slow stderr.
Structured mode emits one JSON object per line; everything passed through
``extra=`` ends up under ``context``.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from queue import Full, Queue
from typing import IO, Iterable, override
from uuid import uuid4

LOGGER = logging.getLogger(__name__)

QUEUE_CAPACITY = 1024

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "trace_id"}


class JsonFormatter(logging.Formatter):
    """Format a record as a single JSON line.

    Keys: ``timestamp`` (record creation time, UTC ISO-8601), ``level``,
    ``logger``, ``message``, ``trace_id``, ``context`` and, when present,
    ``exception``.
    """

    def __init__(self, *, default_trace_id: str | None = None) -> None:
        super().__init__()
        self._default_trace_id = default_trace_id

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", None) or self._default_trace_id,
            "context": {
                key: value
                for key, value in record.__dict__.items()
                if key not in _RECORD_ATTRIBUTES
            },
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            entry["exception"] = record.exc_text
        return json.dumps(entry, default=str, ensure_ascii=False)


class BoundedQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that drops records instead of blocking when full.

    Attributes:
        dropped: Number of records discarded because the queue was full.
    """

    def __init__(self, queue: Queue[logging.LogRecord]) -> None:
        super().__init__(queue)
        self.dropped = 0

    @override
    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except Full:
            self.dropped += 1


def _stream_handler(
    stream: IO[str] | None, *, structured: bool, trace_id: str
) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    if structured:
        handler.setFormatter(JsonFormatter(default_trace_id=trace_id))
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    return handler


def configure_structured_logging(
    logger: logging.Logger,
    *,
    trace_id: str | None = None,
    level: int = logging.INFO,
    structured: bool = True,
    stream: IO[str] | None = None,
) -> logging.handlers.QueueListener:
    """Route ``logger`` through a bounded queue drained by a listener thread.

    Calling this again for the same logger replaces the previous queue
    handler. Stop the returned listener with :func:`shutdown_listeners`.

    Args:
        logger: Logger to configure, usually ``logging.getLogger("flowstate")``.
        trace_id: Identifier stamped on records that do not carry their own.
            A random UUID is used when omitted.
        level: Minimum level for ``logger``.
        structured: JSON lines when ``True``, plain text otherwise.
        stream: Output stream; ``sys.stderr`` when omitted.

    Returns:
        The started queue listener.
    """
    for handler in list(logger.handlers):
        if isinstance(handler, BoundedQueueHandler):
            logger.removeHandler(handler)
    logger.setLevel(level)

    records: Queue[logging.LogRecord] = Queue(maxsize=QUEUE_CAPACITY)
    logger.addHandler(BoundedQueueHandler(records))

    listener = logging.handlers.QueueListener(
        records,
        _stream_handler(
            stream, structured=structured, trace_id=trace_id or str(uuid4())
        ),
    )
    listener.start()
    return listener


def shutdown_listeners(listeners: Iterable[logging.handlers.QueueListener]) -> None:
    """Stop every listener, flushing queued records; failures are logged."""
    for listener in listeners:
        try:
            listener.stop()
        except Exception as exc:  # pragma: no cover - best-effort shutdown
            LOGGER.warning("Failed to stop logging listener", exc_info=exc)
