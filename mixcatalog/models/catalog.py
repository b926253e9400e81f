from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from mixcatalog.core.time import utcnow
from mixcatalog.models.base import Base
from mixcatalog.services.text_normalizer import normalize_text


class TrackArtistRole(str, Enum):
    PRIMARY = "primary"
    FEATURED = "featured"


class MixArtistRole(str, Enum):
    DJ = "dj"


class Mix(Base):
    __tablename__ = "mixes"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cover_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    published_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    # {"youtube": "yt:abc", "soundcloud": "sc:123"}; reassign, never mutate in place
    external_ids: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ingestion_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    raw_mix_id: Mapped[int | None] = mapped_column(
        ForeignKey("raw_mixes.id", ondelete="SET NULL", use_alter=True), nullable=True
    )
    venue_id: Mapped[int | None] = mapped_column(
        ForeignKey("venues.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    tracks: Mapped[list["MixTrack"]] = relationship(
        "MixTrack", back_populates="mix", cascade="all, delete-orphan", order_by="MixTrack.position"
    )
    artists: Mapped[list["MixArtist"]] = relationship(
        "MixArtist", back_populates="mix", cascade="all, delete-orphan"
    )


class Track(Base):
    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(500), index=True)
    # normalize_text(title), searched by the track matcher
    title_key: Mapped[str] = mapped_column(String(500), index=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ingestion_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    artists: Mapped[list["TrackArtist"]] = relationship(
        "TrackArtist", back_populates="track", cascade="all, delete-orphan",
        order_by="TrackArtist.position",
    )
    aliases: Mapped[list["TrackAlias"]] = relationship(
        "TrackAlias", back_populates="track", cascade="all, delete-orphan"
    )

    @validates("title")
    def _sync_title_key(self, key, value):
        self.title_key = normalize_text(value)
        return value


class Artist(Base):
    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    name_key: Mapped[str] = mapped_column(String(255), index=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ingestion_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = normalize_text(value)
        return value


class MixTrack(Base):
    __tablename__ = "mix_tracks"

    id: Mapped[int] = mapped_column(primary_key=True)
    mix_id: Mapped[int] = mapped_column(ForeignKey("mixes.id", ondelete="CASCADE"), index=True)
    track_id: Mapped[int] = mapped_column(ForeignKey("tracks.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer)
    start_time: Mapped[int | None] = mapped_column(Integer, nullable=True)

    mix: Mapped["Mix"] = relationship("Mix", back_populates="tracks")
    track: Mapped["Track"] = relationship("Track")

    __table_args__ = (UniqueConstraint("mix_id", "position", name="uq_mix_tracks_mix_position"),)


class TrackArtist(Base):
    __tablename__ = "track_artists"

    id: Mapped[int] = mapped_column(primary_key=True)
    track_id: Mapped[int] = mapped_column(ForeignKey("tracks.id", ondelete="CASCADE"), index=True)
    artist_id: Mapped[int] = mapped_column(
        ForeignKey("artists.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(20), default=TrackArtistRole.PRIMARY.value)
    position: Mapped[int] = mapped_column(Integer, default=1)

    track: Mapped["Track"] = relationship("Track", back_populates="artists")
    artist: Mapped["Artist"] = relationship("Artist")

    __table_args__ = (
        UniqueConstraint("track_id", "artist_id", "role", name="uq_track_artists_link"),
    )


class MixArtist(Base):
    __tablename__ = "mix_artists"

    id: Mapped[int] = mapped_column(primary_key=True)
    mix_id: Mapped[int] = mapped_column(ForeignKey("mixes.id", ondelete="CASCADE"), index=True)
    artist_id: Mapped[int] = mapped_column(
        ForeignKey("artists.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(20), default=MixArtistRole.DJ.value)

    mix: Mapped["Mix"] = relationship("Mix", back_populates="artists")
    artist: Mapped["Artist"] = relationship("Artist")

    __table_args__ = (UniqueConstraint("mix_id", "artist_id", "role", name="uq_mix_artists_link"),)


class TrackAlias(Base):
    """Alternate surface string for a track, observed on a given mix."""

    __tablename__ = "track_aliases"

    id: Mapped[int] = mapped_column(primary_key=True)
    track_id: Mapped[int] = mapped_column(ForeignKey("tracks.id", ondelete="CASCADE"), index=True)
    alias: Mapped[str] = mapped_column(String(1000))
    alias_key: Mapped[str] = mapped_column(String(1000), index=True)
    source_type: Mapped[str] = mapped_column(String(20), default="ingestion")
    mix_id: Mapped[int | None] = mapped_column(
        ForeignKey("mixes.id", ondelete="SET NULL"), nullable=True
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    track: Mapped["Track"] = relationship("Track", back_populates="aliases")

    __table_args__ = (UniqueConstraint("track_id", "alias", name="uq_track_aliases_track_alias"),)

    @validates("alias")
    def _sync_alias_key(self, key, value):
        self.alias_key = normalize_text(value)
        return value
