"""Staging: the inbound interface fetch workers use to queue raw mixes."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mixcatalog.models.raw_mix import RawMix, RawMixStatus, RawTrack
from mixcatalog.schemas.staging import RawMixCreate
from mixcatalog.services.duplicate_detection import check_for_duplicate_raw_mix

logger = logging.getLogger(__name__)


def stage_raw_mix(db: Session, payload: RawMixCreate) -> tuple[RawMix | None, bool]:
    """
    Insert a raw mix and its tracks in pending status.
    Returns (raw_mix, created). Already-staged mixes return (None, False).
    """
    provider = payload.provider.value
    if check_for_duplicate_raw_mix(db, payload.source_url, payload.external_id, provider):
        logger.info("Skipping already staged mix: %s", payload.source_url)
        return None, False

    raw_mix = RawMix(
        provider=provider,
        source_url=payload.source_url,
        external_id=payload.external_id,
        raw_title=payload.raw_title,
        raw_description=payload.raw_description,
        raw_artist=payload.raw_artist,
        uploaded_at=payload.uploaded_at,
        duration_seconds=payload.duration_seconds,
        artwork_url=payload.artwork_url,
        raw_metadata=payload.raw_metadata,
        status=RawMixStatus.PENDING.value,
    )
    for index, track in enumerate(payload.tracks, start=1):
        raw_mix.tracks.append(
            RawTrack(
                line_text=track.line_text,
                position=track.position if track.position is not None else index,
                timestamp_seconds=track.timestamp_seconds,
                raw_artist=track.raw_artist,
                raw_title=track.raw_title,
                source=track.source or provider,
            )
        )

    try:
        db.add(raw_mix)
        db.commit()
    except IntegrityError:
        # Unique source_url: another worker staged it first
        db.rollback()
        logger.info("Raw mix staged concurrently: %s", payload.source_url)
        return None, False

    db.refresh(raw_mix)
    logger.info("Staged raw mix %s with %d track(s)", raw_mix.id, len(raw_mix.tracks))
    return raw_mix, True
