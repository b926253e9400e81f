"""UTC datetime helpers.

Store columns are naive ``DateTime`` (SQLite and PostgreSQL without
``timezone=True``), so every timestamp the pipeline writes is naive UTC.
"""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def hours_ago(hours: float) -> datetime:
    """Return the naive UTC datetime ``hours`` before now."""
    return utcnow() - timedelta(hours=hours)
