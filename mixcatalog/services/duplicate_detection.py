"""Duplicate detection for mixes across providers, and merge rules for duplicates.

Duplicates are decided by identifier equality only: two mixes are the same
when they share one namespaced external id. Scalar data is merged by
filling gaps, never by overwriting.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from mixcatalog.models.catalog import Mix
from mixcatalog.models.raw_mix import RawMix
from mixcatalog.services.external_ids import (
    ExternalIds,
    all_external_ids,
    find_matching_external_id,
)

logger = logging.getLogger(__name__)

# Higher wins when two sources describe the same mix (tracklist sites are most reliable)
SOURCE_PRIORITY: dict[str, int] = {
    "1001tracklists": 3,
    "soundcloud": 2,
    "youtube": 1,
}

# Mix column <- raw mix column, filled on merge only when the mix value is missing
MERGE_FILL_FIELDS: tuple[tuple[str, str], ...] = (
    ("description", "raw_description"),
    ("cover_url", "artwork_url"),
    ("duration", "duration_seconds"),
)

_RAW_DATA_FIELDS = (
    "raw_title",
    "raw_description",
    "raw_artist",
    "uploaded_at",
    "duration_seconds",
    "artwork_url",
)


@dataclass(frozen=True)
class DuplicateCheckResult:
    is_duplicate: bool
    existing_mix_id: int | None = None
    matched_on: str | None = None


def check_for_duplicate_mix(db: Session, external_ids: ExternalIds) -> DuplicateCheckResult:
    """Find a catalog mix that already carries any of the given identifiers.

    Store errors propagate; the caller decides whether a failed lookup
    aborts the mix.
    """
    if not all_external_ids(external_ids):
        return DuplicateCheckResult(is_duplicate=False)

    mixes = db.query(Mix).filter(Mix.external_ids.is_not(None)).order_by(Mix.id).all()
    for mix in mixes:
        matched = find_matching_external_id(external_ids, mix.external_ids)
        if matched:
            logger.debug("External id %s already on mix %s", matched, mix.id)
            return DuplicateCheckResult(
                is_duplicate=True, existing_mix_id=mix.id, matched_on=matched
            )

    return DuplicateCheckResult(is_duplicate=False)


def check_for_duplicate_raw_mix(
    db: Session,
    source_url: str,
    external_id: str | None = None,
    provider: str | None = None,
) -> bool:
    """True if staging already holds this source URL or this provider's external id."""
    if db.query(RawMix.id).filter(RawMix.source_url == source_url).first():
        return True

    if external_id:
        query = db.query(RawMix.id).filter(RawMix.external_id == external_id)
        if provider:
            query = query.filter(RawMix.provider == provider)
        if query.first():
            return True

    return False


def merge_external_ids(existing: ExternalIds | None, incoming: ExternalIds | None) -> ExternalIds:
    """Union of both mappings. On a shared key the existing value is kept."""
    merged = dict(existing or {})
    for key, value in (incoming or {}).items():
        if key not in merged and value:
            merged[key] = value
    return merged


def higher_priority_source(source1: str, source2: str) -> str:
    """Return whichever source ranks higher; ``source1`` on ties or unknown sources."""
    if SOURCE_PRIORITY.get(source1, 0) >= SOURCE_PRIORITY.get(source2, 0):
        return source1
    return source2


def merge_raw_mix_data(
    primary: dict[str, Any],
    secondary: dict[str, Any],
    primary_source: str,
    secondary_source: str,
) -> dict[str, Any]:
    """Combine two staged payloads for the same mix.

    Each field comes from the higher-priority source, falling back to the
    other when empty. Metadata dicts are merged with the higher-priority
    source's keys winning.
    """
    if higher_priority_source(primary_source, secondary_source) == primary_source:
        higher, lower = primary, secondary
    else:
        higher, lower = secondary, primary

    merged = {name: higher.get(name) or lower.get(name) for name in _RAW_DATA_FIELDS}
    merged["raw_metadata"] = {
        **(lower.get("raw_metadata") or {}),
        **(higher.get("raw_metadata") or {}),
    }
    return merged


def fill_missing_mix_fields(mix: Mix, raw_mix: RawMix) -> list[str]:
    """Copy raw values onto the mix where the mix has none. Returns the filled columns."""
    filled = []
    for mix_field, raw_field in MERGE_FILL_FIELDS:
        incoming = getattr(raw_mix, raw_field)
        if getattr(mix, mix_field) in (None, "") and incoming not in (None, ""):
            setattr(mix, mix_field, incoming)
            filled.append(mix_field)
    return filled
