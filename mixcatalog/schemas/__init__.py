from mixcatalog.schemas.canonicalization import CanonicalizationOptions, RawMixStats, RunSummary
from mixcatalog.schemas.staging import RawMixCreate, RawTrackCreate

__all__ = [
    "CanonicalizationOptions",
    "RawMixStats",
    "RunSummary",
    "RawMixCreate",
    "RawTrackCreate",
]
