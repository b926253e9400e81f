from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mixcatalog.core.time import utcnow
from mixcatalog.models.base import Base


class ContextType(str, Enum):
    FESTIVAL = "festival"
    RADIO_SHOW = "radio_show"
    PUBLISHER = "publisher"
    SERIES = "series"
    PROMOTER = "promoter"
    STAGE = "stage"


class MixContextRole(str, Enum):
    PERFORMED_AT = "performed_at"
    BROADCASTED_ON = "broadcasted_on"
    PUBLISHED_BY = "published_by"


class Venue(Base):
    __tablename__ = "venues"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    external_ids: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Context(Base):
    """Festival, radio show, publisher or series a mix is associated with."""

    __tablename__ = "contexts"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(20), index=True)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("contexts.id", ondelete="SET NULL"), nullable=True
    )
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    external_ids: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    venue_id: Mapped[int | None] = mapped_column(
        ForeignKey("venues.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    parent: Mapped["Context"] = relationship("Context", remote_side=[id])


class MixContext(Base):
    __tablename__ = "mix_contexts"

    id: Mapped[int] = mapped_column(primary_key=True)
    mix_id: Mapped[int] = mapped_column(ForeignKey("mixes.id", ondelete="CASCADE"), index=True)
    context_id: Mapped[int] = mapped_column(
        ForeignKey("contexts.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    context: Mapped["Context"] = relationship("Context")

    __table_args__ = (
        UniqueConstraint("mix_id", "context_id", "role", name="uq_mix_contexts_link"),
    )
