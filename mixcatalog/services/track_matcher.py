"""Match staged tracklist lines against catalog tracks and artists.

Only a high-confidence title match lets the engine reuse an existing track.
Everything else is reported with its best score and tier so the engine can
create a new, unverified track for review. Every attempt also surfaces alias
strings so textual variants accumulate without merging identities.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from mixcatalog.core.config import Settings
from mixcatalog.models.catalog import Artist, Track, TrackAlias
from mixcatalog.models.raw_mix import RawTrack
from mixcatalog.services.similarity import (
    ARTIST_NAME_THRESHOLD,
    MEDIUM_CONFIDENCE_BAND,
    TRACK_TITLE_THRESHOLD,
    Candidate,
    ConfidenceTier,
    MatchResult,
    find_best_match,
    similarity,
    validate_match,
)
from mixcatalog.services.text_normalizer import (
    extract_artist_from_line,
    extract_artist_variations,
    extract_title_from_line,
    generate_search_aliases,
    normalize_text,
)

logger = logging.getLogger(__name__)

# Alias recall adds at most this many extra rows on top of the title search
_ALIAS_CANDIDATE_LIMIT = 20
_PREFIX_LENGTH = 3


@dataclass(frozen=True)
class TrackCandidate:
    """The matcher's view of one staged tracklist line."""

    line_text: str = ""
    raw_title: str | None = None
    raw_artist: str | None = None
    position: int | None = None

    @classmethod
    def from_raw_track(cls, raw_track: RawTrack) -> "TrackCandidate":
        return cls(
            line_text=raw_track.line_text or "",
            raw_title=raw_track.raw_title,
            raw_artist=raw_track.raw_artist,
            position=raw_track.position,
        )


@dataclass(frozen=True)
class TrackMatchResult:
    track: MatchResult[Track] = field(default_factory=MatchResult)
    artists: list[MatchResult[Artist]] = field(default_factory=list)
    confidence: ConfidenceTier = ConfidenceTier.LOW
    should_create_new: bool = True
    aliases: list[str] = field(default_factory=list)
    title: str | None = None
    artist_names: list[str] = field(default_factory=list)

    @property
    def matched_track(self) -> Track | None:
        return self.track.match if self.track.is_high_confidence else None

    @property
    def high_confidence_artists(self) -> list[Artist]:
        """Matched artists in credit order, without repeats."""
        artists: list[Artist] = []
        for outcome in self.artists:
            if outcome.is_high_confidence and outcome.match not in artists:
                artists.append(outcome.match)
        return artists


class TrackMatcher:
    """Fuzzy matcher bound to one session.

    Candidate rows are re-queried on every call, so entities created earlier
    in the same run are visible to later lines.
    """

    def __init__(
        self,
        db: Session,
        track_threshold: float = TRACK_TITLE_THRESHOLD,
        artist_threshold: float = ARTIST_NAME_THRESHOLD,
        medium_band: float = MEDIUM_CONFIDENCE_BAND,
        candidate_limit: int = 50,
        scorer: Callable[[str, str], float] = similarity,
    ):
        self.db = db
        self.track_threshold = track_threshold
        self.artist_threshold = artist_threshold
        self.medium_band = medium_band
        self.candidate_limit = candidate_limit
        self.scorer = scorer

    @classmethod
    def from_settings(cls, db: Session, settings: Settings) -> "TrackMatcher":
        return cls(
            db,
            track_threshold=settings.track_match_threshold,
            artist_threshold=settings.artist_match_threshold,
            medium_band=settings.medium_confidence_band,
            candidate_limit=settings.matcher_candidate_limit,
        )

    def match_track(self, candidate: TrackCandidate) -> TrackMatchResult:
        """Match one line. Empty or unparseable lines give a low, no-match result."""
        if not (candidate.raw_title or candidate.raw_artist or candidate.line_text):
            return TrackMatchResult()

        title = candidate.raw_title or extract_title_from_line(candidate.line_text)
        artist_names = self._extract_artists(candidate.raw_artist, candidate.line_text)

        if not title:
            logger.debug("No title extracted for track: %s", candidate.line_text)
            return TrackMatchResult(artist_names=artist_names)

        logger.debug('Matching track: "%s" by [%s]', title, ", ".join(artist_names))

        track_match = self._find_matching_track(title)
        artist_matches = self.find_matching_artists(artist_names)
        confidence = self._overall_confidence(track_match, artist_matches)

        return TrackMatchResult(
            track=track_match,
            artists=artist_matches,
            confidence=confidence,
            should_create_new=not track_match.is_high_confidence,
            aliases=self._track_aliases(title, artist_names, candidate.line_text),
            title=title,
            artist_names=artist_names,
        )

    def find_matching_artists(self, names: list[str]) -> list[MatchResult[Artist]]:
        """One outcome per name, in the order given."""
        outcomes = []
        for name in names:
            candidates = [Candidate(item=a, text=a.name) for a in self._search_artists(name)]
            result = find_best_match(
                name,
                candidates,
                self.artist_threshold,
                entity_type="artist",
                band=self.medium_band,
                scorer=self.scorer,
            )
            outcomes.append(self._validated(name, result, "Artist"))
        return outcomes

    def _find_matching_track(self, title: str) -> MatchResult[Track]:
        candidates = [Candidate(item=t, text=t.title) for t in self._search_tracks(title)]
        candidates.extend(
            Candidate(item=alias.track, text=alias.alias) for alias in self._search_aliases(title)
        )
        result = find_best_match(
            title,
            candidates,
            self.track_threshold,
            entity_type="track",
            band=self.medium_band,
            scorer=self.scorer,
        )
        return self._validated(title, result, "Track")

    def _validated(self, query: str, result: MatchResult, label: str) -> MatchResult:
        if not result.is_high_confidence:
            return result
        validation = validate_match(query, result.matched_text or "", result.score)
        if validation.is_valid:
            return result
        logger.debug("%s match validation failed: %s", label, validation.reason)
        return replace(result, match=None, tier=ConfidenceTier.LOW)

    def _search_tracks(self, title: str) -> list[Track]:
        return self._ranked_search(Track, Track.title_key, normalize_text(title))

    def _search_aliases(self, title: str) -> list[TrackAlias]:
        normalized = normalize_text(title)
        if not normalized:
            return []
        exact_first = case((TrackAlias.alias_key == normalized, 0), else_=1)
        return (
            self.db.query(TrackAlias)
            .filter(TrackAlias.alias_key.contains(normalized, autoescape=True))
            .order_by(exact_first, TrackAlias.id)
            .limit(_ALIAS_CANDIDATE_LIMIT)
            .all()
        )

    def _search_artists(self, name: str) -> list[Artist]:
        return self._ranked_search(Artist, Artist.name_key, normalize_text(name))

    def _ranked_search(self, model, key_column, normalized: str) -> list:
        """Rows whose key contains the query or shares its prefix.

        Exact keys rank first and prefix-only hits last, ahead of the limit.
        """
        if not normalized:
            return []
        contains = key_column.contains(normalized, autoescape=True)
        rank = case((key_column == normalized, 0), (contains, 1), else_=2)
        return (
            self.db.query(model)
            .filter(
                or_(
                    contains,
                    key_column.startswith(normalized[:_PREFIX_LENGTH], autoescape=True),
                )
            )
            .order_by(rank, model.id)
            .limit(self.candidate_limit)
            .all()
        )

    @staticmethod
    def _extract_artists(raw_artist: str | None, line_text: str | None) -> list[str]:
        names: list[str] = []
        sources = [raw_artist, extract_artist_from_line(line_text)]
        for source in sources:
            if not source:
                continue
            for name in extract_artist_variations(source):
                if len(name) > 1 and name not in names:
                    names.append(name)
        return names

    @staticmethod
    def _overall_confidence(
        track_match: MatchResult[Track], artist_matches: list[MatchResult[Artist]]
    ) -> ConfidenceTier:
        track_confident = track_match.is_high_confidence
        artists_confident = any(m.is_high_confidence for m in artist_matches)

        if track_confident and artists_confident:
            return ConfidenceTier.HIGH
        if track_confident or artists_confident or track_match.tier == ConfidenceTier.MEDIUM:
            return ConfidenceTier.MEDIUM
        return ConfidenceTier.LOW

    @staticmethod
    def _track_aliases(title: str, artist_names: list[str], line_text: str | None) -> list[str]:
        aliases = generate_search_aliases(title)
        for artist in artist_names[:2]:
            aliases.append(f"{artist} - {title}")
            aliases.append(f"{title} by {artist}")
        if line_text and line_text != title:
            aliases.append(line_text.strip())

        unique: list[str] = []
        for alias in aliases:
            if alias and alias not in unique:
                unique.append(alias)
        return unique
