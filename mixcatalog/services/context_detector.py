"""Detect festivals, radio shows, publishers and venues from mix metadata.

Pure pattern matching over the title, description and uploading channel.
Each detection carries a confidence (0-1) and reason codes explaining why
it fired. Detection is best-effort: any internal error yields an empty
result rather than an exception.
"""

import logging
import re
from dataclasses import dataclass, field

from mixcatalog.models.context import ContextType, MixContextRole
from mixcatalog.services.text_normalizer import MULTI_SPACE_RE, normalize_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectedContext:
    name: str
    type: ContextType
    role: MixContextRole
    confidence: float
    reason_codes: tuple[str, ...]
    external_ids: dict[str, str] = field(default_factory=dict)
    parent_name: str | None = None


@dataclass(frozen=True)
class DetectedVenue:
    name: str
    confidence: float
    reason_codes: tuple[str, ...]
    city: str | None = None
    country: str | None = None
    lat: float | None = None
    lng: float | None = None
    external_ids: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DetectionResult:
    contexts: list[DetectedContext] = field(default_factory=list)
    venue: DetectedVenue | None = None


@dataclass(frozen=True)
class _PublisherMapping:
    name: str
    external_ids: dict[str, str]


@dataclass(frozen=True)
class _FestivalPattern:
    pattern: re.Pattern[str]
    name: str
    confidence: float


@dataclass(frozen=True)
class _RadioShowPattern:
    pattern: re.Pattern[str]
    name: str
    confidence: float
    parent: str | None = None


@dataclass(frozen=True)
class _VenuePattern:
    pattern: re.Pattern[str]
    name: str
    city: str
    country: str
    confidence: float


# YouTube channel id -> publisher
CHANNEL_PUBLISHER_MAPPINGS: dict[str, _PublisherMapping] = {
    "UCPKT_csvP72boVX0XrMtagQ": _PublisherMapping(
        "Cercle", {"youtube": "yt:UCPKT_csvP72boVX0XrMtagQ", "soundcloud": "sc:cerclemusic"}
    ),
    "UCGBAsFXa8TP60B4d2CGet0w": _PublisherMapping(
        "Lane 8", {"youtube": "yt:UCGBAsFXa8TP60B4d2CGet0w", "soundcloud": "sc:lane8music"}
    ),
    "UC_CiDDWOQNqhzD-h_8kOXBg": _PublisherMapping(
        "Tomorrowland", {"youtube": "yt:UC_CiDDWOQNqhzD-h_8kOXBg"}
    ),
    "UCtUJOcJ7PjeB-QS8jeWm0VA": _PublisherMapping(
        "Boiler Room", {"youtube": "yt:UCtUJOcJ7PjeB-QS8jeWm0VA"}
    ),
}

# Priority order: first match wins
FESTIVAL_PATTERNS: tuple[_FestivalPattern, ...] = (
    _FestivalPattern(re.compile(r"\btomorrowland", re.I), "Tomorrowland", 0.9),
    _FestivalPattern(re.compile(r"\bultra\s*music\s*festival", re.I), "Ultra Music Festival", 0.9),
    _FestivalPattern(
        re.compile(r"\bedc\b\s*(?:las\s*vegas|orlando|uk)?", re.I), "Electric Daisy Carnival", 0.9
    ),
    _FestivalPattern(re.compile(r"\bcoachella", re.I), "Coachella", 0.9),
    _FestivalPattern(re.compile(r"\bburning\s*man", re.I), "Burning Man", 0.9),
    _FestivalPattern(re.compile(r"\bdefqon\W*1", re.I), "Defqon.1", 0.85),
    _FestivalPattern(re.compile(r"\bawakenings", re.I), "Awakenings", 0.85),
    _FestivalPattern(re.compile(r"\btime\s*warp", re.I), "Time Warp", 0.85),
)

RADIO_SHOW_PATTERNS: tuple[_RadioShowPattern, ...] = (
    _RadioShowPattern(re.compile(r"essential\s*mix", re.I), "Essential Mix", 0.95, "BBC Radio 1"),
    _RadioShowPattern(re.compile(r"group\s*therapy", re.I), "Group Therapy", 0.95, "Anjunabeats"),
    _RadioShowPattern(
        re.compile(r"diplo\s*&\s*friends", re.I), "Diplo & Friends", 0.95, "BBC Radio 1"
    ),
    _RadioShowPattern(
        re.compile(r"odd\s*one\s*out\s*radio", re.I), "Odd One Out Radio", 0.95, "YOTTO"
    ),
    _RadioShowPattern(re.compile(r"deep\s*house\s*lounge", re.I), "Deep House Lounge", 0.8),
    _RadioShowPattern(re.compile(r"future\s*sounds", re.I), "Future Sounds", 0.9, "BBC Radio 1"),
    _RadioShowPattern(
        re.compile(r"in\s*new\s*music\s*we\s*trust", re.I),
        "In New Music We Trust",
        0.9,
        "BBC Radio 1",
    ),
    _RadioShowPattern(re.compile(r"mixmag\s*lab", re.I), "Mixmag Lab", 0.9, "Mixmag"),
    _RadioShowPattern(
        re.compile(r"anjunadeep\s*open\s*air", re.I), "Anjunadeep Open Air", 0.9, "Anjunadeep"
    ),
)

VENUE_PATTERNS: tuple[_VenuePattern, ...] = (
    _VenuePattern(re.compile(r"\bprintworks", re.I), "Printworks London", "London", "UK", 0.9),
    _VenuePattern(re.compile(r"\bfabric\b", re.I), "Fabric", "London", "UK", 0.9),
    _VenuePattern(re.compile(r"\bpacha\b", re.I), "Pacha Ibiza", "Ibiza", "Spain", 0.9),
    _VenuePattern(
        re.compile(r"\bs[óo]\s*track\s*boa", re.I), "SÓ TRACK BOA", "São Paulo", "Brazil", 0.9
    ),
    _VenuePattern(
        re.compile(r"\belectric\s*brixton", re.I), "Electric Brixton", "London", "UK", 0.9
    ),
    _VenuePattern(re.compile(r"\bberghain", re.I), "Berghain", "Berlin", "Germany", 0.9),
    _VenuePattern(re.compile(r"\bwatergate\b", re.I), "Watergate", "Berlin", "Germany", 0.9),
    _VenuePattern(re.compile(r"\boutput\b", re.I), "Output", "Brooklyn", "USA", 0.85),
    _VenuePattern(
        re.compile(r"\bministry\s*of\s*sound", re.I), "Ministry of Sound", "London", "UK", 0.9
    ),
    _VenuePattern(
        re.compile(r"\bbiosphere\b", re.I), "Biosphere Museum", "Montreal", "Canada", 0.85
    ),
    _VenuePattern(re.compile(r"\bl[öo]yly\b", re.I), "Löyly", "Helsinki", "Finland", 0.9),
)

# Applied to the description only, in order
LOCATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:live\s+(?:from|at)|recorded\s+(?:at|in))\s+([^,\n\d:]+)", re.I),
    re.compile(r"(?:@|\bat)\s+([A-Z][a-zA-Z\s&]+(?:,\s*[A-Z][a-zA-Z\s]+)*)"),
    re.compile(r"location:\s*([^,\n\d:]+)", re.I),
)

YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")
TIMESTAMP_RE = re.compile(r"\d{1,2}:\d{2}(?::\d{2})?")
LEADING_DIGIT_RE = re.compile(r"^\d+")

# Channel names containing these are labels/aggregators rather than an artist's own channel
GENERIC_CHANNEL_WORDS = ("music", "records", "official")

CHANNEL_MAPPING_CONFIDENCE = 0.95
ARTIST_CHANNEL_CONFIDENCE = 0.8
GENERIC_CHANNEL_CONFIDENCE = 0.7
PARENT_CONFIDENCE_DROP = 0.1
DESCRIPTION_VENUE_CONFIDENCE = 0.6


def extract_year(text: str) -> int | None:
    match = YEAR_RE.search(text)
    return int(match.group(1)) if match else None


def _detect_contexts(
    title: str, description: str, channel_name: str, channel_id: str | None
) -> list[DetectedContext]:
    contexts: list[DetectedContext] = []
    combined = f"{title} {description} {channel_name}"

    mapping = CHANNEL_PUBLISHER_MAPPINGS.get(channel_id) if channel_id else None
    if mapping:
        contexts.append(
            DetectedContext(
                name=mapping.name,
                type=ContextType.PUBLISHER,
                role=MixContextRole.PUBLISHED_BY,
                confidence=CHANNEL_MAPPING_CONFIDENCE,
                reason_codes=("channel_mapping", "exact_match"),
                external_ids=dict(mapping.external_ids),
            )
        )

    for festival in FESTIVAL_PATTERNS:
        if festival.pattern.search(combined):
            year = extract_year(combined)
            contexts.append(
                DetectedContext(
                    name=f"{festival.name} {year}" if year else festival.name,
                    type=ContextType.FESTIVAL,
                    role=MixContextRole.PERFORMED_AT,
                    confidence=festival.confidence,
                    reason_codes=("title_pattern", "exact_match"),
                )
            )
            break

    for show in RADIO_SHOW_PATTERNS:
        if show.pattern.search(combined):
            contexts.append(
                DetectedContext(
                    name=show.name,
                    type=ContextType.RADIO_SHOW,
                    role=MixContextRole.BROADCASTED_ON,
                    confidence=show.confidence,
                    reason_codes=("title_pattern", "exact_match"),
                    parent_name=show.parent,
                )
            )
            if show.parent:
                contexts.append(
                    DetectedContext(
                        name=show.parent,
                        type=ContextType.PUBLISHER,
                        role=MixContextRole.PUBLISHED_BY,
                        confidence=round(show.confidence - PARENT_CONFIDENCE_DROP, 2),
                        reason_codes=("parent_relationship", "radio_show_mapping"),
                    )
                )
            break

    if not mapping:
        name = channel_name.strip()
        if name:
            lowered = name.lower()
            is_artist_channel = not any(word in lowered for word in GENERIC_CHANNEL_WORDS)
            if is_artist_channel:
                confidence = ARTIST_CHANNEL_CONFIDENCE
            else:
                confidence = GENERIC_CHANNEL_CONFIDENCE
            contexts.append(
                DetectedContext(
                    name=name,
                    type=ContextType.PUBLISHER,
                    role=MixContextRole.PUBLISHED_BY,
                    confidence=confidence,
                    reason_codes=(
                        "channel_name",
                        "artist_channel" if is_artist_channel else "generic_mapping",
                    ),
                    external_ids={"youtube": f"yt:{channel_id}"} if channel_id else {},
                )
            )

    return contexts


def _detect_venue(title: str, description: str) -> DetectedVenue | None:
    combined = f"{title} {description}"
    for venue in VENUE_PATTERNS:
        if venue.pattern.search(combined):
            return DetectedVenue(
                name=venue.name,
                city=venue.city,
                country=venue.country,
                confidence=venue.confidence,
                reason_codes=("venue_pattern", "exact_match"),
            )

    for pattern in LOCATION_PATTERNS:
        match = pattern.search(description)
        if not match or not match.group(1):
            continue
        location = TIMESTAMP_RE.sub("", match.group(1).strip())
        location = MULTI_SPACE_RE.sub(" ", location).strip()
        if len(location) < 3 or LEADING_DIGIT_RE.match(location):
            continue

        parts = [part.strip() for part in location.split(",")]
        if len(parts[0]) > 2:
            return DetectedVenue(
                name=parts[0],
                city=parts[1] if len(parts) > 1 and parts[1] else None,
                country=parts[2] if len(parts) > 2 and parts[2] else None,
                confidence=DESCRIPTION_VENUE_CONFIDENCE,
                reason_codes=("description_extraction", "location_pattern"),
            )

    return None


def detect_contexts_and_venues(
    title: str | None,
    description: str | None = None,
    channel_name: str | None = None,
    channel_id: str | None = None,
) -> DetectionResult:
    """Detect contexts and an optional venue for one mix.

    Contexts are returned highest confidence first; equal confidences keep
    the order channel mapping, festival, radio show, parent publisher,
    channel-name publisher.
    """
    title = title or ""
    description = description or ""
    channel_name = channel_name or ""
    try:
        contexts = _detect_contexts(title, description, channel_name, channel_id)
        venue = _detect_venue(title, description)
    except Exception:
        logger.exception("Context/venue detection failed for %r", title[:100])
        return DetectionResult()

    contexts.sort(key=lambda c: c.confidence, reverse=True)

    logger.info(
        "Context/venue detection completed: %d context(s), venue=%s, top=%s",
        len(contexts),
        venue.name if venue else None,
        contexts[0].name if contexts else None,
    )
    for context in contexts:
        logger.debug(
            "Context: %s (%s, %s, %s)",
            context.name,
            context.type.value,
            context.confidence,
            ", ".join(context.reason_codes),
        )
    return DetectionResult(contexts=contexts, venue=venue)


def normalize_context_name(name: str) -> str:
    return normalize_key(name)


def normalize_venue_name(name: str) -> str:
    return normalize_key(name)
