from mixcatalog.models.base import Base
from mixcatalog.models.catalog import (
    Artist,
    Mix,
    MixArtist,
    MixArtistRole,
    MixTrack,
    Track,
    TrackAlias,
    TrackArtist,
    TrackArtistRole,
)
from mixcatalog.models.context import Context, ContextType, MixContext, MixContextRole, Venue
from mixcatalog.models.ingestion_log import IngestionLog, IngestionLogLevel
from mixcatalog.models.raw_mix import RawMix, RawMixStatus, RawTrack

__all__ = [
    "Base",
    "RawMix",
    "RawMixStatus",
    "RawTrack",
    "Mix",
    "Track",
    "Artist",
    "MixTrack",
    "TrackArtist",
    "TrackArtistRole",
    "MixArtist",
    "MixArtistRole",
    "TrackAlias",
    "Context",
    "ContextType",
    "Venue",
    "MixContext",
    "MixContextRole",
    "IngestionLog",
    "IngestionLogLevel",
]
