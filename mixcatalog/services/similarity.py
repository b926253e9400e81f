"""Fuzzy similarity scoring and best-candidate selection.

Scores are rapidfuzz ``token_sort_ratio`` values scaled to 0..1 over
``normalize_text`` output, so word order and "feat."/"ft." spelling do not
affect the result.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from rapidfuzz import fuzz
from rapidfuzz.utils import default_process

from mixcatalog.services.text_normalizer import normalize_text

logger = logging.getLogger(__name__)

TRACK_TITLE_THRESHOLD = 0.90
ARTIST_NAME_THRESHOLD = 0.85
MEDIUM_CONFIDENCE_BAND = 0.10

# Below this a near miss is not worth a warning
AMBIGUOUS_MATCH_FLOOR = 0.6
MAX_ALTERNATIVES = 3

T = TypeVar("T")


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def similarity(a: str, b: str) -> float:
    """Token-sort similarity of two already-normalized strings (0.0 to 1.0)."""
    return round(fuzz.token_sort_ratio(a, b, processor=default_process) / 100, 4)


def confidence_tier(
    score: float, threshold: float, band: float = MEDIUM_CONFIDENCE_BAND
) -> ConfidenceTier:
    """Classify a score: high at/above threshold, medium within ``band`` below it."""
    if score >= threshold:
        return ConfidenceTier.HIGH
    # round() keeps 0.9 - 0.1 from landing at 0.7999...
    if score >= round(threshold - band, 4):
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


@dataclass(frozen=True)
class Candidate(Generic[T]):
    """A catalog entity offered to the matcher with the text to compare."""

    item: T
    text: str


@dataclass(frozen=True)
class ScoredCandidate(Generic[T]):
    item: T
    text: str
    score: float


@dataclass(frozen=True)
class MatchResult(Generic[T]):
    """Outcome of matching one query string against a candidate set.

    ``match`` is only set for high-confidence matches; ``score`` always holds
    the best score seen so callers can still tell medium from low.
    """

    match: T | None = None
    score: float = 0.0
    tier: ConfidenceTier = ConfidenceTier.LOW
    alternatives: tuple[ScoredCandidate[T], ...] = field(default_factory=tuple)
    matched_text: str | None = None

    @property
    def is_high_confidence(self) -> bool:
        return self.tier == ConfidenceTier.HIGH and self.match is not None


@dataclass(frozen=True)
class MatchValidation:
    is_valid: bool
    reason: str | None = None


def find_best_match(
    query: str,
    candidates: Sequence[Candidate[T]],
    threshold: float,
    entity_type: str = "entity",
    band: float = MEDIUM_CONFIDENCE_BAND,
    scorer: Callable[[str, str], float] = similarity,
) -> MatchResult[T]:
    """Score every candidate against ``query`` and keep the best one.

    Ties keep candidate order. Up to three runners-up are returned as
    alternatives. A best score strictly between 0.6 and the threshold is
    logged as an ambiguous match for later review.
    """
    if not query or not candidates:
        return MatchResult()

    normalized_query = normalize_text(query)
    scored = [
        ScoredCandidate(
            item=c.item, text=c.text, score=scorer(normalized_query, normalize_text(c.text))
        )
        for c in candidates
    ]
    scored.sort(key=lambda s: s.score, reverse=True)

    best = scored[0]
    tier = confidence_tier(best.score, threshold, band)
    alternatives = tuple(scored[1 : MAX_ALTERNATIVES + 1])

    if AMBIGUOUS_MATCH_FLOOR < best.score < threshold:
        logger.warning(
            'Ambiguous %s match: "%s" -> "%s" (score: %.3f, threshold: %s)',
            entity_type,
            query,
            best.text,
            best.score,
            threshold,
        )

    return MatchResult(
        match=best.item if tier == ConfidenceTier.HIGH else None,
        score=best.score,
        tier=tier,
        alternatives=alternatives,
        matched_text=best.text,
    )


def validate_match(query: str, match_text: str, score: float) -> MatchValidation:
    """Reject high scores that are implausible on closer inspection.

    Word-count ratios above 3 need a score of at least 0.95, and a first
    word that differs (ratio below 0.6) needs at least 0.9.
    """
    query_words = normalize_text(query).split(" ")
    match_words = normalize_text(match_text).split(" ")

    length_ratio = max(len(query_words), len(match_words)) / min(
        len(query_words), len(match_words)
    )
    if length_ratio > 3 and score < 0.95:
        return MatchValidation(
            False, f'Length mismatch: "{query}" vs "{match_text}" (ratio: {length_ratio:.2f})'
        )

    first_word_similarity = fuzz.ratio(query_words[0], match_words[0]) / 100
    if first_word_similarity < 0.6 and score < 0.9:
        return MatchValidation(
            False, f'First word mismatch: "{query_words[0]}" vs "{match_words[0]}"'
        )

    return MatchValidation(True)
