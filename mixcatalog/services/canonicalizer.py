"""Canonicalization: turn one staged raw mix into catalog rows.

Flow for one raw mix: mark it processing, look for an existing mix carrying
the same external id, then either merge into that mix or create a new one,
resolve each tracklist line to a track (reusing only high-confidence
matches), and finally mark the raw mix canonicalized.

The mix row is committed before track processing starts and every track is
committed on its own, so a failing line only loses that line.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mixcatalog.core.logging import LogContext
from mixcatalog.core.time import utcnow
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
from mixcatalog.models.raw_mix import RawMix, RawMixStatus, RawTrack
from mixcatalog.schemas.canonicalization import CanonicalizationOptions
from mixcatalog.services.duplicate_detection import (
    check_for_duplicate_mix,
    fill_missing_mix_fields,
    merge_external_ids,
)
from mixcatalog.services.external_ids import ExternalIds, add_external_id
from mixcatalog.services.raw_mix_status import transition_status
from mixcatalog.services.similarity import ConfidenceTier
from mixcatalog.services.text_normalizer import extract_artist_from_line
from mixcatalog.services.track_matcher import TrackCandidate, TrackMatcher, TrackMatchResult

logger = logging.getLogger(__name__)

WORKER_TYPE = "canonicalization"
AUTO_INGESTION_SOURCE = "auto"
ALIAS_SOURCE_TYPE = "ingestion"
UNTITLED_MIX = "Untitled Mix"
UNKNOWN_TRACK = "Unknown Track"

# Medium-confidence tracks auto-verify only when the caller's threshold is this lenient
MEDIUM_AUTO_VERIFY_MAX_THRESHOLD = 0.7


class CanonicalizationError(Exception):
    """Raised when a raw mix cannot be canonicalized."""


class RawMixNotFoundError(CanonicalizationError):
    """Raised when a raw mix does not exist."""


@dataclass
class CanonicalizationResult:
    success: bool = False
    mix_id: int | None = None
    is_duplicate: bool = False
    tracks_created: int = 0
    tracks_matched: int = 0
    artists_created: int = 0
    aliases_created: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None


@dataclass
class _TrackOutcome:
    created: bool = False
    artists_created: int = 0
    aliases_created: int = 0


def should_auto_verify_mix(options: CanonicalizationOptions) -> bool:
    """Backfill always leaves mixes for manual review; rolling may auto-verify."""
    return options.mode == "rolling"


def should_auto_verify_artist(options: CanonicalizationOptions) -> bool:
    return options.mode == "rolling"


def should_auto_verify_track(
    confidence: ConfidenceTier, options: CanonicalizationOptions
) -> bool:
    """Rolling mode verifies high-confidence tracks, and medium ones under a lenient threshold."""
    if options.mode == "backfill":
        return False
    if confidence == ConfidenceTier.HIGH:
        return True
    return (
        confidence == ConfidenceTier.MEDIUM
        and options.auto_verify_threshold <= MEDIUM_AUTO_VERIFY_MAX_THRESHOLD
    )


def verification_fields(options: CanonicalizationOptions, should_verify: bool) -> dict[str, Any]:
    """Column values for a new entity. Verification is attributed to the system user."""
    if should_verify and options.system_user_id:
        return {
            "is_verified": True,
            "verified_by": options.system_user_id,
            "verified_at": utcnow(),
        }
    return {"is_verified": False, "verified_by": None, "verified_at": None}


def build_external_ids(raw_mix: RawMix) -> ExternalIds:
    if not raw_mix.external_id:
        return {}
    return add_external_id({}, raw_mix.provider, raw_mix.external_id)


def add_track_alias(db: Session, track_id: int, alias: str, mix_id: int | None) -> bool:
    """
    Insert an alias unless (track_id, alias) already exists.
    Returns True if a row was inserted. Does not commit.
    """
    exists = (
        db.query(TrackAlias.id)
        .filter(TrackAlias.track_id == track_id, TrackAlias.alias == alias)
        .first()
    )
    if exists:
        return False
    try:
        with db.begin_nested():
            db.add(
                TrackAlias(
                    track_id=track_id,
                    alias=alias,
                    source_type=ALIAS_SOURCE_TYPE,
                    mix_id=mix_id,
                    is_primary=False,
                )
            )
    except IntegrityError:
        # Inserted by a concurrent run between the check and the insert
        return False
    return True


class MixCanonicalizer:
    """Canonicalizes raw mixes against one session.

    The matcher is injectable; by default one with the standard thresholds
    is bound to the same session.
    """

    def __init__(self, db: Session, matcher: TrackMatcher | None = None):
        self.db = db
        self.matcher = matcher or TrackMatcher(db)

    def canonicalize_mix(
        self,
        raw_mix_id: int,
        options: CanonicalizationOptions | None = None,
        ctx: LogContext | None = None,
    ) -> CanonicalizationResult:
        """Canonicalize one raw mix.

        Never raises: a missing raw mix or a mix-level failure comes back as
        ``success=False`` with the error text. Raw mixes that are not
        pending are skipped untouched.
        """
        options = options or CanonicalizationOptions()
        ctx = (ctx or LogContext(worker_type=WORKER_TYPE)).bind(raw_mix_id=raw_mix_id)
        extra = ctx.as_extra()
        result = CanonicalizationResult()

        try:
            raw_mix = self._load_raw_mix(raw_mix_id)
            if raw_mix.status != RawMixStatus.PENDING.value:
                result.skipped = True
                result.reason = f"Raw mix is {raw_mix.status}"
                logger.info("Skipping raw mix %s: %s", raw_mix_id, result.reason, extra=extra)
                return result

            logger.info("Canonicalizing mix: %s", raw_mix.raw_title, extra=extra)
            transition_status(self.db, raw_mix, RawMixStatus.PROCESSING)

            raw_tracks = list(raw_mix.tracks)
            external_ids = build_external_ids(raw_mix)
            duplicate = check_for_duplicate_mix(self.db, external_ids)

            if duplicate.is_duplicate:
                mix_id = duplicate.existing_mix_id
                self._merge_into_existing(
                    raw_mix, raw_tracks, mix_id, external_ids, options, result, ctx
                )
            else:
                self._create_new_mix(raw_mix, raw_tracks, external_ids, options, result, ctx)

            transition_status(
                self.db, raw_mix, RawMixStatus.CANONICALIZED, canonicalized_mix_id=result.mix_id
            )
            result.success = True
        except RawMixNotFoundError as e:
            result.errors.append(str(e))
            logger.warning("%s", e, extra=extra)
            return result
        except Exception as e:
            self.db.rollback()
            result.errors.append(f"Canonicalization failed for {raw_mix_id}: {e}")
            logger.exception("Canonicalization failed for raw mix %s", raw_mix_id, extra=extra)
            return result

        logger.info(
            "Canonicalized raw mix %s -> mix %s (duplicate=%s, tracks created=%d, matched=%d, "
            "artists=%d, aliases=%d, errors=%d)",
            raw_mix_id,
            result.mix_id,
            result.is_duplicate,
            result.tracks_created,
            result.tracks_matched,
            result.artists_created,
            result.aliases_created,
            len(result.errors),
            extra=extra,
        )
        return result

    def _load_raw_mix(self, raw_mix_id: int) -> RawMix:
        raw_mix = self.db.query(RawMix).filter(RawMix.id == raw_mix_id).first()
        if not raw_mix:
            raise RawMixNotFoundError(f"Raw mix not found: {raw_mix_id}")
        return raw_mix

    def _merge_into_existing(
        self,
        raw_mix: RawMix,
        raw_tracks: list[RawTrack],
        mix_id: int | None,
        external_ids: ExternalIds,
        options: CanonicalizationOptions,
        result: CanonicalizationResult,
        ctx: LogContext,
    ) -> None:
        mix = self.db.query(Mix).filter(Mix.id == mix_id).first()
        if not mix:
            raise CanonicalizationError(f"Duplicate mix {mix_id} disappeared during merge")

        logger.info("Merging into existing mix: %s", mix.id, extra=ctx.as_extra())
        mix.external_ids = merge_external_ids(mix.external_ids, external_ids)
        filled = fill_missing_mix_fields(mix, raw_mix)
        self.db.commit()
        if filled:
            logger.debug("Filled %s on mix %s", ", ".join(filled), mix.id, extra=ctx.as_extra())

        result.mix_id = mix.id
        result.is_duplicate = True
        result.reason = "Merged into existing mix"

        has_tracks = self.db.query(MixTrack.id).filter(MixTrack.mix_id == mix.id).first()
        if has_tracks:
            logger.info(
                "Mix %s already has tracks, skipping track import", mix.id, extra=ctx.as_extra()
            )
            return
        self._process_tracks(mix.id, raw_tracks, options, result, ctx)

    def _create_new_mix(
        self,
        raw_mix: RawMix,
        raw_tracks: list[RawTrack],
        external_ids: ExternalIds,
        options: CanonicalizationOptions,
        result: CanonicalizationResult,
        ctx: LogContext,
    ) -> None:
        mix = Mix(
            title=raw_mix.raw_title or UNTITLED_MIX,
            description=raw_mix.raw_description,
            audio_url=raw_mix.source_url,
            cover_url=raw_mix.artwork_url,
            duration=raw_mix.duration_seconds,
            published_date=raw_mix.uploaded_at,
            external_ids=external_ids or None,
            ingestion_source=raw_mix.provider,
            raw_mix_id=raw_mix.id,
            **verification_fields(options, should_auto_verify_mix(options)),
        )
        self.db.add(mix)
        self.db.flush()

        if raw_mix.raw_artist:
            result.artists_created += self._link_mix_artist(mix, raw_mix.raw_artist, options)

        self.db.commit()
        result.mix_id = mix.id
        logger.info("Created mix: %s", mix.id, extra=ctx.as_extra())

        self._process_tracks(mix.id, raw_tracks, options, result, ctx)

    def _link_mix_artist(self, mix: Mix, name: str, options: CanonicalizationOptions) -> int:
        """Link the performing DJ to the mix. Returns the number of artists created."""
        created = 0
        outcome = self.matcher.find_matching_artists([name])[0]
        artist = outcome.match if outcome.is_high_confidence else None
        if artist is None:
            artist = self._create_artist(name, options)
            created = 1
        self.db.add(MixArtist(mix_id=mix.id, artist_id=artist.id, role=MixArtistRole.DJ.value))
        self.db.flush()
        return created

    def _create_artist(self, name: str, options: CanonicalizationOptions) -> Artist:
        artist = Artist(
            name=name,
            ingestion_source=AUTO_INGESTION_SOURCE,
            **verification_fields(options, should_auto_verify_artist(options)),
        )
        self.db.add(artist)
        self.db.flush()
        return artist

    def _process_tracks(
        self,
        mix_id: int,
        raw_tracks: list[RawTrack],
        options: CanonicalizationOptions,
        result: CanonicalizationResult,
        ctx: LogContext,
    ) -> None:
        for index, raw_track in enumerate(raw_tracks, start=1):
            position = raw_track.position if raw_track.position is not None else index
            try:
                outcome = self._process_track(mix_id, raw_track, position, options)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                message = f"Failed to process track {position}: {e}"
                result.errors.append(message)
                logger.warning("%s", message, extra=ctx.as_extra())
                continue

            if outcome.created:
                result.tracks_created += 1
            else:
                result.tracks_matched += 1
            result.artists_created += outcome.artists_created
            result.aliases_created += outcome.aliases_created

    def _process_track(
        self,
        mix_id: int,
        raw_track: RawTrack,
        position: int,
        options: CanonicalizationOptions,
    ) -> _TrackOutcome:
        match = self.matcher.match_track(TrackCandidate.from_raw_track(raw_track))
        outcome = _TrackOutcome()

        track = match.matched_track
        if track is not None:
            logger.debug("Using existing track: %s", track.title)
        else:
            track = self._create_track(raw_track, match, options, outcome)

        self.db.add(
            MixTrack(
                mix_id=mix_id,
                track_id=track.id,
                position=position,
                start_time=raw_track.timestamp_seconds,
            )
        )
        self.db.flush()

        for alias in match.aliases:
            if add_track_alias(self.db, track.id, alias, mix_id):
                outcome.aliases_created += 1
        return outcome

    def _create_track(
        self,
        raw_track: RawTrack,
        match: TrackMatchResult,
        options: CanonicalizationOptions,
        outcome: _TrackOutcome,
    ) -> Track:
        track = Track(
            title=raw_track.raw_title or match.title or UNKNOWN_TRACK,
            ingestion_source=AUTO_INGESTION_SOURCE,
            **verification_fields(options, should_auto_verify_track(match.confidence, options)),
        )
        self.db.add(track)
        self.db.flush()
        outcome.created = True

        artists = match.high_confidence_artists
        if not artists:
            raw_name = raw_track.raw_artist or extract_artist_from_line(raw_track.line_text)
            if raw_name:
                artists = [self._create_artist(raw_name, options)]
                outcome.artists_created += 1

        for i, artist in enumerate(artists):
            role = TrackArtistRole.PRIMARY if i == 0 else TrackArtistRole.FEATURED
            self.db.add(
                TrackArtist(track_id=track.id, artist_id=artist.id, role=role.value, position=i + 1)
            )
        self.db.flush()
        return track
