"""Logging setup, bound log context, and the asynchronous ingestion-log sink.

Module loggers use ``logging.getLogger(__name__)`` as usual. Pipeline code
threads a ``LogContext`` value through its calls and passes
``extra=ctx.as_extra()`` so the console formatter and the ingestion-log sink
can attribute each record to a job / raw mix.
"""

from __future__ import annotations

import logging
import queue
import sys
from dataclasses import dataclass, replace
from logging.handlers import QueueHandler, QueueListener
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "mixcatalog"

_CONTEXT_FIELDS = ("worker_type", "job_id", "raw_mix_id")

# Store levels are the four the ingestion_logs table accepts
_STORE_LEVELS = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


@dataclass(frozen=True)
class LogContext:
    """Immutable attribution for log records emitted while processing one unit of work."""

    worker_type: str | None = None
    job_id: str | None = None
    raw_mix_id: int | None = None

    def bind(self, **changes: Any) -> LogContext:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def as_extra(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in _CONTEXT_FIELDS}


class ContextFormatter(logging.Formatter):
    """Formatter that appends bound context, e.g. ``[worker=canonicalization, mix=12]``."""

    _LABELS = {"worker_type": "worker", "job_id": "job", "raw_mix_id": "mix"}

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        parts = []
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                parts.append(f"{self._LABELS[name]}={value}")
        return f"{base} [{', '.join(parts)}]" if parts else base


def configure_logging(level: str | int = "INFO") -> None:
    """Install a console handler on the package logger tree."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    if any(getattr(h, "_mixcatalog_console", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    handler._mixcatalog_console = True  # type: ignore[attr-defined]
    root.addHandler(handler)


class IngestionLogHandler(logging.Handler):
    """Writes records into ``ingestion_logs``. Runs on the listener thread only."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        super().__init__()
        self._session_factory = session_factory
        self.failed_writes = 0

    def emit(self, record: logging.LogRecord) -> None:
        from mixcatalog.services.ingestion_log import log_ingestion

        db = self._session_factory()
        try:
            log_ingestion(
                db,
                level=_STORE_LEVELS.get(record.levelno, "info"),
                message=record.getMessage()[:2000],
                raw_mix_id=getattr(record, "raw_mix_id", None),
                job_id=getattr(record, "job_id", None),
                worker_type=getattr(record, "worker_type", None),
                metadata={"logger": record.name},
            )
        except Exception:
            # Counted, not raised: a broken sink must never fail the pipeline
            self.failed_writes += 1
            db.rollback()
        finally:
            db.close()


class IngestionLogSink:
    """Fire-and-forget mirror of package log records into the store.

    Callers enqueue through a ``QueueHandler`` and return immediately; a
    ``QueueListener`` thread performs the writes. Failed writes are counted
    on ``failed_writes`` and reported when the sink stops.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        level: str | int = logging.INFO,
        logger_name: str = ROOT_LOGGER_NAME,
    ) -> None:
        self._logger_name = logger_name
        self._queue: queue.Queue[logging.LogRecord] = queue.Queue()
        self.handler = IngestionLogHandler(session_factory)
        self.handler.setLevel(level)
        self._queue_handler = QueueHandler(self._queue)
        self._queue_handler.setLevel(level)
        self._listener = QueueListener(self._queue, self.handler, respect_handler_level=True)
        self._started = False

    @property
    def failed_writes(self) -> int:
        return self.handler.failed_writes

    def start(self) -> IngestionLogSink:
        if not self._started:
            logging.getLogger(self._logger_name).addHandler(self._queue_handler)
            self._listener.start()
            self._started = True
        return self

    def stop(self) -> None:
        """Detach, drain the queue, and report dropped writes."""
        if not self._started:
            return
        logging.getLogger(self._logger_name).removeHandler(self._queue_handler)
        self._listener.stop()
        self._started = False
        if self.failed_writes:
            logger.warning("Ingestion log sink failed to write %d record(s)", self.failed_writes)

    def __enter__(self) -> IngestionLogSink:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
