"""Persist detected contexts and venues and link them to canonical mixes."""

import logging
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mixcatalog.models.catalog import Mix
from mixcatalog.models.context import Context, ContextType, MixContext, MixContextRole, Venue
from mixcatalog.services.context_detector import (
    DetectedContext,
    DetectedVenue,
    DetectionResult,
    normalize_context_name,
    normalize_venue_name,
)

logger = logging.getLogger(__name__)


class MixNotFoundError(Exception):
    """Raised when a canonical mix does not exist."""


@dataclass
class DetectionApplyResult:
    contexts_created: int = 0
    contexts_reused: int = 0
    mix_contexts_created: int = 0
    venue_created: bool = False
    venue_id: int | None = None
    errors: list[str] = field(default_factory=list)


def find_existing_context(db: Session, name: str, context_type: ContextType) -> Context | None:
    """Exact name match first, then a normalized-name match within the same type."""
    exact = (
        db.query(Context)
        .filter(Context.name == name, Context.type == context_type.value)
        .order_by(Context.id)
        .first()
    )
    if exact:
        return exact

    normalized = normalize_context_name(name)
    same_type = db.query(Context).filter(Context.type == context_type.value).order_by(Context.id)
    for context in same_type:
        if normalize_context_name(context.name) == normalized:
            return context
    return None


def find_existing_venue(db: Session, name: str, city: str | None = None) -> Venue | None:
    query = db.query(Venue).filter(Venue.name == name)
    if city:
        query = query.filter(Venue.city == city)
    exact = query.order_by(Venue.id).first()
    if exact:
        return exact

    normalized = normalize_venue_name(name)
    for venue in db.query(Venue).order_by(Venue.id):
        name_matches = normalize_venue_name(venue.name) == normalized
        city_matches = not city or not venue.city or venue.city.lower() == city.lower()
        if name_matches and city_matches:
            return venue
    return None


def ensure_context(
    db: Session, detected: DetectedContext, parent_id: int | None = None
) -> tuple[Context, bool]:
    """
    Get or create the context for a detection.
    Returns (context, created). Flushes but does not commit.
    """
    existing = find_existing_context(db, detected.name, detected.type)
    if existing:
        if parent_id and existing.parent_id is None and existing.id != parent_id:
            existing.parent_id = parent_id
        logger.debug("Using existing context: %s (%s)", existing.name, existing.type)
        return existing, False

    context = Context(
        name=detected.name,
        type=detected.type.value,
        external_ids=dict(detected.external_ids),
        parent_id=parent_id,
    )
    db.add(context)
    db.flush()
    logger.info(
        "Created new context: %s (%s) confidence=%s reasons=%s",
        context.name,
        context.type,
        detected.confidence,
        ",".join(detected.reason_codes),
    )
    return context, True


def ensure_venue(db: Session, detected: DetectedVenue) -> tuple[Venue, bool]:
    """
    Get or create the venue for a detection.
    Returns (venue, created). Flushes but does not commit.
    """
    existing = find_existing_venue(db, detected.name, detected.city)
    if existing:
        logger.debug("Using existing venue: %s (%s)", existing.name, existing.city)
        return existing, False

    venue = Venue(
        name=detected.name,
        city=detected.city,
        country=detected.country,
        lat=detected.lat,
        lng=detected.lng,
        external_ids=dict(detected.external_ids),
    )
    db.add(venue)
    db.flush()
    logger.info("Created new venue: %s (%s)", venue.name, venue.city)
    return venue, True


def ensure_mix_context(
    db: Session, mix_id: int, context_id: int, role: MixContextRole
) -> tuple[MixContext, bool]:
    """Link a mix to a context. Idempotent on (mix, context, role)."""
    existing = (
        db.query(MixContext)
        .filter(
            MixContext.mix_id == mix_id,
            MixContext.context_id == context_id,
            MixContext.role == role.value,
        )
        .first()
    )
    if existing:
        return existing, False

    link = MixContext(mix_id=mix_id, context_id=context_id, role=role.value)
    db.add(link)
    db.flush()
    logger.info("Linked mix %s -> context %s (%s)", mix_id, context_id, role.value)
    return link, True


def update_mix_venue(db: Session, mix_id: int, venue_id: int) -> Mix:
    mix = db.query(Mix).filter(Mix.id == mix_id).first()
    if not mix:
        raise MixNotFoundError(f"Mix {mix_id} not found")
    mix.venue_id = venue_id
    db.flush()
    return mix


def apply_detection_results(
    db: Session, mix_id: int, detection: DetectionResult
) -> DetectionApplyResult:
    """Upsert detected contexts and venue and link them to a canonical mix.

    Each item runs in its own savepoint; a failing item is logged and
    skipped. Commits once at the end.
    """
    result = DetectionApplyResult()
    context_ids: dict[str, int] = {}

    # Parents first so radio shows can point at their publisher
    ordered = sorted(detection.contexts, key=lambda c: c.parent_name is not None)
    for detected in ordered:
        try:
            with db.begin_nested():
                parent_id = context_ids.get(detected.parent_name) if detected.parent_name else None
                context, created = ensure_context(db, detected, parent_id=parent_id)
                _, linked = ensure_mix_context(db, mix_id, context.id, detected.role)
        except SQLAlchemyError as e:
            logger.error("Failed to process context %s for mix %s: %s", detected.name, mix_id, e)
            result.errors.append(f"context {detected.name}: {e}")
            continue
        context_ids[detected.name] = context.id
        if created:
            result.contexts_created += 1
        else:
            result.contexts_reused += 1
        if linked:
            result.mix_contexts_created += 1

    if detection.venue:
        try:
            with db.begin_nested():
                venue, created = ensure_venue(db, detection.venue)
                update_mix_venue(db, mix_id, venue.id)
        except (SQLAlchemyError, MixNotFoundError) as e:
            logger.error(
                "Failed to process venue %s for mix %s: %s", detection.venue.name, mix_id, e
            )
            result.errors.append(f"venue {detection.venue.name}: {e}")
        else:
            result.venue_created = created
            result.venue_id = venue.id

    db.commit()
    logger.info(
        "Applied detection to mix %s: %d context(s) created, %d reused, venue=%s",
        mix_id,
        result.contexts_created,
        result.contexts_reused,
        result.venue_id,
    )
    return result


def get_context_stats(db: Session) -> dict:
    """Counts of contexts (total and per type), venues and mix links."""
    by_type = {
        context_type: count
        for context_type, count in db.query(Context.type, func.count(Context.id))
        .group_by(Context.type)
        .all()
    }
    return {
        "total_contexts": sum(by_type.values()),
        "contexts_by_type": by_type,
        "total_venues": db.query(func.count(Venue.id)).scalar() or 0,
        "total_mix_contexts": db.query(func.count(MixContext.id)).scalar() or 0,
    }
