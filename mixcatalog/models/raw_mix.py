from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mixcatalog.core.time import utcnow
from mixcatalog.models.base import Base


class RawMixStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CANONICALIZED = "canonicalized"
    FAILED = "failed"


class RawMix(Base):
    """Staged, unverified mix description as delivered by a fetch worker."""

    __tablename__ = "raw_mixes"

    id: Mapped[int] = mapped_column(primary_key=True)
    provider: Mapped[str] = mapped_column(String(20), index=True)
    source_url: Mapped[str] = mapped_column(String(500), unique=True)
    # Native provider id; namespaced ("yt:...") when copied onto a canonical mix
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    raw_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    raw_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    uploaded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Provider-specific extras (channel_name, channel_id, ...)
    raw_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=RawMixStatus.PENDING.value, index=True
    )
    canonicalized_mix_id: Mapped[int | None] = mapped_column(
        ForeignKey("mixes.id", ondelete="SET NULL"), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    tracks: Mapped[list["RawTrack"]] = relationship(
        "RawTrack",
        back_populates="raw_mix",
        cascade="all, delete-orphan",
        order_by="RawTrack.position",
    )


class RawTrack(Base):
    """One staged tracklist line belonging to a raw mix."""

    __tablename__ = "raw_tracks"

    id: Mapped[int] = mapped_column(primary_key=True)
    raw_mix_id: Mapped[int] = mapped_column(
        ForeignKey("raw_mixes.id", ondelete="CASCADE"), index=True
    )
    line_text: Mapped[str] = mapped_column(Text, default="")
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timestamp_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    raw_artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    raw_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    raw_mix: Mapped["RawMix"] = relationship("RawMix", back_populates="tracks")
