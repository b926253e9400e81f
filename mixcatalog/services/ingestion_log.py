"""Ingestion log service: pipeline events persisted for monitoring and QA."""

from typing import Any

from sqlalchemy.orm import Session

from mixcatalog.core.time import utcnow
from mixcatalog.models.ingestion_log import IngestionLog, IngestionLogLevel


def log_ingestion(
    db: Session,
    level: str,
    message: str,
    raw_mix_id: int | None = None,
    job_id: str | None = None,
    worker_type: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> IngestionLog:
    """Create an ingestion log entry. Unknown levels raise ValueError."""
    entry = IngestionLog(
        created_at=utcnow(),
        level=IngestionLogLevel(level).value,
        message=message,
        raw_mix_id=raw_mix_id,
        job_id=job_id,
        worker_type=worker_type,
        log_metadata=metadata,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_recent_logs(
    db: Session,
    limit: int = 50,
    raw_mix_id: int | None = None,
    level: str | None = None,
) -> list[IngestionLog]:
    """Get recent ingestion log entries, newest first."""
    query = db.query(IngestionLog)
    if raw_mix_id is not None:
        query = query.filter(IngestionLog.raw_mix_id == raw_mix_id)
    if level is not None:
        query = query.filter(IngestionLog.level == level)
    return query.order_by(IngestionLog.created_at.desc(), IngestionLog.id.desc()).limit(limit).all()
