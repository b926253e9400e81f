"""Batch runner: canonicalize pending raw mixes one at a time.

Mixes in a batch are processed strictly sequentially. A mix that fails is
marked ``failed`` with its error text and the batch moves on; only a failure
to read the batch itself is fatal.
"""

import logging
import time
import uuid
from collections.abc import Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mixcatalog.core.config import Settings, get_settings
from mixcatalog.core.logging import LogContext
from mixcatalog.core.time import hours_ago
from mixcatalog.models.raw_mix import RawMix, RawMixStatus
from mixcatalog.schemas.canonicalization import CanonicalizationOptions, RawMixStats, RunSummary
from mixcatalog.services.canonicalizer import (
    WORKER_TYPE,
    CanonicalizationResult,
    MixCanonicalizer,
)
from mixcatalog.services.context_detector import DetectionResult, detect_contexts_and_venues
from mixcatalog.services.context_venue import apply_detection_results
from mixcatalog.services.raw_mix_status import (
    InvalidStatusTransitionError,
    mark_failed,
    transition_status,
)
from mixcatalog.services.track_matcher import TrackMatcher

logger = logging.getLogger(__name__)

Detector = Callable[[str | None, str | None, str | None, str | None], DetectionResult]


class CanonicalizationJobRunner:
    def __init__(
        self,
        db: Session,
        canonicalizer: MixCanonicalizer | None = None,
        settings: Settings | None = None,
        detector: Detector = detect_contexts_and_venues,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.canonicalizer = canonicalizer or MixCanonicalizer(
            db, TrackMatcher.from_settings(db, self.settings)
        )
        self.detector = detector

    def get_pending_raw_mix_ids(self, limit: int) -> list[int]:
        """Oldest pending raw mixes first."""
        rows = (
            self.db.query(RawMix.id)
            .filter(RawMix.status == RawMixStatus.PENDING.value)
            .order_by(RawMix.created_at, RawMix.id)
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def run_canonicalization(
        self,
        batch_size: int | None = None,
        options: CanonicalizationOptions | None = None,
    ) -> RunSummary:
        """Canonicalize up to ``batch_size`` pending raw mixes.

        Raises only when the batch cannot be read; per-mix failures are
        recorded on the raw mix and in the summary.
        """
        batch_size = batch_size or self.settings.canonicalization_batch_size
        options = options or CanonicalizationOptions.from_settings(self.settings)
        ctx = LogContext(worker_type=WORKER_TYPE, job_id=uuid.uuid4().hex[:12])
        started = time.monotonic()
        summary = RunSummary()

        logger.info("Starting canonicalization job (mode=%s)", options.mode, extra=ctx.as_extra())
        pending_ids = self.get_pending_raw_mix_ids(batch_size)
        if not pending_ids:
            logger.info("No pending raw mixes to process", extra=ctx.as_extra())
            return summary

        logger.info("Processing %d pending raw mixes", len(pending_ids), extra=ctx.as_extra())
        for raw_mix_id in pending_ids:
            mix_ctx = ctx.bind(raw_mix_id=raw_mix_id)
            result = self._canonicalize_guarded(raw_mix_id, options, ctx)

            if result.skipped:
                summary.skipped += 1
                continue

            summary.processed += 1
            if result.success:
                summary.succeeded += 1
                summary.duplicates += int(result.is_duplicate)
                summary.tracks_created += result.tracks_created
                summary.tracks_matched += result.tracks_matched
                summary.artists_created += result.artists_created
                summary.aliases_created += result.aliases_created
                summary.errors.extend(result.errors)
                if self.settings.context_detection_enabled and result.mix_id is not None:
                    self._detect_contexts(raw_mix_id, result.mix_id, mix_ctx)
            else:
                summary.failed += 1
                summary.errors.extend(result.errors)
                self._mark_failed(raw_mix_id, "; ".join(result.errors), mix_ctx)
                for error in result.errors:
                    logger.error("  - %s", error, extra=mix_ctx.as_extra())

        summary.duration_seconds = round(time.monotonic() - started, 2)
        self._log_summary(summary, ctx)
        return summary

    def retry_failed_mixes(
        self,
        max_age_hours: float | None = None,
        batch_size: int | None = None,
        options: CanonicalizationOptions | None = None,
    ) -> RunSummary:
        """Reset recent failures to pending, then run a batch over them."""
        max_age_hours = max_age_hours or self.settings.retry_max_age_hours
        batch_size = batch_size or self.settings.retry_batch_size

        failed = (
            self.db.query(RawMix)
            .filter(
                RawMix.status == RawMixStatus.FAILED.value,
                RawMix.created_at >= hours_ago(max_age_hours),
            )
            .order_by(RawMix.created_at, RawMix.id)
            .limit(batch_size)
            .all()
        )
        if not failed:
            logger.info("No failed mixes to retry")
            return RunSummary()

        for raw_mix in failed:
            transition_status(self.db, raw_mix, RawMixStatus.PENDING, commit=False)
        self.db.commit()
        logger.info("Reset %d failed mixes to pending status", len(failed))

        return self.run_canonicalization(batch_size, options)

    def get_stats(self) -> RawMixStats:
        counts = dict(
            self.db.query(RawMix.status, func.count(RawMix.id)).group_by(RawMix.status).all()
        )
        stats = RawMixStats(
            pending=counts.get(RawMixStatus.PENDING.value, 0),
            processing=counts.get(RawMixStatus.PROCESSING.value, 0),
            canonicalized=counts.get(RawMixStatus.CANONICALIZED.value, 0),
            failed=counts.get(RawMixStatus.FAILED.value, 0),
            total=sum(counts.values()),
        )
        if stats.total:
            stats.completion_rate = round(stats.canonicalized / stats.total * 100, 1)
        return stats

    def _canonicalize_guarded(
        self, raw_mix_id: int, options: CanonicalizationOptions, ctx: LogContext
    ) -> CanonicalizationResult:
        try:
            return self.canonicalizer.canonicalize_mix(raw_mix_id, options, ctx)
        except Exception as e:
            self.db.rollback()
            logger.exception(
                "Canonicalization error for raw mix %s",
                raw_mix_id,
                extra=ctx.bind(raw_mix_id=raw_mix_id).as_extra(),
            )
            return CanonicalizationResult(errors=[f"Canonicalization error: {e}"])

    def _mark_failed(self, raw_mix_id: int, error_message: str, ctx: LogContext) -> None:
        try:
            raw_mix = self.db.query(RawMix).filter(RawMix.id == raw_mix_id).first()
            if raw_mix is None:
                return
            mark_failed(self.db, raw_mix, error_message)
        except (SQLAlchemyError, InvalidStatusTransitionError):
            self.db.rollback()
            logger.warning("Failed to mark raw mix as failed", exc_info=True, extra=ctx.as_extra())

    def _detect_contexts(self, raw_mix_id: int, mix_id: int, ctx: LogContext) -> None:
        try:
            raw_mix = self.db.query(RawMix).filter(RawMix.id == raw_mix_id).first()
            if raw_mix is None:
                return
            metadata = raw_mix.raw_metadata or {}
            detection = self.detector(
                raw_mix.raw_title,
                raw_mix.raw_description,
                metadata.get("channel_name"),
                metadata.get("channel_id"),
            )
            if detection.contexts or detection.venue:
                apply_detection_results(self.db, mix_id, detection)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning(
                "Context detection could not be saved", exc_info=True, extra=ctx.as_extra()
            )

    def _log_summary(self, summary: RunSummary, ctx: LogContext) -> None:
        logger.info(
            "Canonicalization summary: processed=%d succeeded=%d failed=%d skipped=%d "
            "duplicates=%d tracks_created=%d tracks_matched=%d artists_created=%d "
            "aliases_created=%d duration=%.2fs success_rate=%.1f%%",
            summary.processed,
            summary.succeeded,
            summary.failed,
            summary.skipped,
            summary.duplicates,
            summary.tracks_created,
            summary.tracks_matched,
            summary.artists_created,
            summary.aliases_created,
            summary.duration_seconds,
            summary.success_rate,
            extra=ctx.as_extra(),
        )
