"""Text normalization for tracklist lines, titles and artist names.

Two normalizers live here: ``normalize_text`` prepares titles and artist
names for fuzzy comparison, ``normalize_key`` builds punctuation-free keys
for exact lookups of contexts and venues. The ``extract_*`` helpers split a
free-text tracklist line ("03. 12:30 Artist - Title") into its parts.
"""

import re

BRACKETED_RE = re.compile(r"\[.*?\]")
PARENTHESIZED_RE = re.compile(r"\(.*?\)")
FEAT_RE = re.compile(r"\b(?:featuring|feat|ft)\b\.?", re.IGNORECASE)
VERSUS_RE = re.compile(r"\b(?:versus|vs)\b\.?", re.IGNORECASE)
AMPERSAND_RE = re.compile(r"\s*&\s*")
MULTI_SPACE_RE = re.compile(r"\s+")
NON_WORD_RE = re.compile(r"[^\w\s]")

# Leading "[12:30]" / "1:02:03" timestamps and "03." / "3)" ordinals
TIMESTAMP_PREFIX_RE = re.compile(r"^\[?\d{1,2}:\d{2}(?::\d{2})?\]?\s*")
ORDINAL_PREFIX_RE = re.compile(r"^\d+[\.\)]\s*")

ARTICLES_RE = re.compile(r"\b(?:the|a|an)\b", re.IGNORECASE)
_VERSION_WORDS = r"remix|edit|rework|remaster|remastered|version|mix"
VERSION_SUFFIX_RE = re.compile(rf" (?:{_VERSION_WORDS})$", re.IGNORECASE)
VERSION_PAREN_SUFFIX_RE = re.compile(rf" \(.*?(?:{_VERSION_WORDS}).*?\)$", re.IGNORECASE)

# Applied in order; each split continues from the first segment of the previous one
_ARTIST_SEPARATORS = (
    re.compile(r" feat\.? ", re.IGNORECASE),
    re.compile(r" ft\.? ", re.IGNORECASE),
    re.compile(r" featuring ", re.IGNORECASE),
    re.compile(r" vs\.? ", re.IGNORECASE),
    re.compile(r" versus ", re.IGNORECASE),
    re.compile(r" & "),
    re.compile(r" and ", re.IGNORECASE),
    re.compile(r" x ", re.IGNORECASE),
    re.compile(r" with ", re.IGNORECASE),
)


def normalize_text(text: str) -> str:
    """Normalize a title or artist name for fuzzy comparison.

    Lower-cases, drops bracketed and parenthesized segments, canonicalizes
    feat/ft to "featuring", vs to "versus" and "&" to "and", then collapses
    whitespace.
    """
    result = text.lower().strip()
    result = BRACKETED_RE.sub("", result)
    result = PARENTHESIZED_RE.sub("", result)
    result = FEAT_RE.sub("featuring", result)
    result = VERSUS_RE.sub("versus", result)
    result = AMPERSAND_RE.sub(" and ", result)
    return MULTI_SPACE_RE.sub(" ", result).strip()


def normalize_key(text: str) -> str:
    """Lower-case key with punctuation replaced by spaces ("Défqon.1" -> "défqon 1")."""
    result = NON_WORD_RE.sub(" ", text.lower().strip())
    return MULTI_SPACE_RE.sub(" ", result).strip()


def strip_line_prefix(line: str) -> str:
    """Remove a leading timestamp and then a leading ordinal from a tracklist line."""
    clean = TIMESTAMP_PREFIX_RE.sub("", line, count=1)
    return ORDINAL_PREFIX_RE.sub("", clean, count=1)


def extract_title_from_line(line: str | None) -> str | None:
    """Return the title part of "Artist - Title" or "Title by Artist" lines.

    Lines with neither separator are returned whole (after prefix removal).
    """
    if not line:
        return None
    clean = strip_line_prefix(line)

    dash_split = clean.split(" - ")
    if len(dash_split) >= 2:
        return " - ".join(dash_split[1:]).strip()

    by_split = clean.split(" by ")
    if len(by_split) == 2:
        return by_split[0].strip()

    return clean.strip()


def extract_artist_from_line(line: str | None) -> str | None:
    """Return the artist part of a tracklist line, or None when there is no separator."""
    if not line:
        return None
    clean = strip_line_prefix(line)

    dash_split = clean.split(" - ")
    if len(dash_split) >= 2:
        return dash_split[0].strip()

    by_split = clean.split(" by ")
    if len(by_split) == 2:
        return by_split[1].strip()

    return None


def extract_artist_variations(artist_text: str) -> list[str]:
    """Split a composite artist credit into the individual names it mentions.

    The original string is always the first element. Segments of two
    characters or fewer are dropped ("DJ X & Me" keeps "DJ X" only).
    """
    variations = [artist_text.strip()]
    current = artist_text
    for separator in _ARTIST_SEPARATORS:
        parts = separator.split(current)
        if len(parts) > 1:
            for part in parts:
                trimmed = part.strip()
                if len(trimmed) > 2 and trimmed not in variations:
                    variations.append(trimmed)
            current = parts[0].strip()
    return variations


def generate_search_aliases(name: str) -> list[str]:
    """Surface-string variants of a title used to widen future matching."""
    aliases = [name, normalize_text(name)]

    without_articles = MULTI_SPACE_RE.sub(" ", ARTICLES_RE.sub("", name)).strip()
    if without_articles != name:
        aliases.append(without_articles)

    for pattern in (VERSION_SUFFIX_RE, VERSION_PAREN_SUFFIX_RE):
        without_suffix = pattern.sub("", name).strip()
        if without_suffix != name and len(without_suffix) > 3:
            aliases.append(without_suffix)

    return _unique_non_empty(aliases)


def _unique_non_empty(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result
