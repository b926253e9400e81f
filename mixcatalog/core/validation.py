"""Sanitization for text arriving from fetch workers."""

import re
import unicodedata

# Control characters to remove (except newline, tab)
CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
MULTI_WHITESPACE_PATTERN = re.compile(r"[ \t]+")


def clean_text(text: str | None) -> str | None:
    """
    NFC-normalize, drop control characters and null bytes, and strip.
    Newlines are kept (descriptions are multi-line). Blank input becomes None.
    """
    if text is None:
        return None
    text = unicodedata.normalize("NFC", text)
    text = CONTROL_CHAR_PATTERN.sub("", text)
    text = text.strip()
    return text or None


def clean_single_line(text: str | None) -> str | None:
    """Like clean_text, with newlines replaced and runs of whitespace collapsed."""
    if text is None:
        return None
    text = text.replace("\r", " ").replace("\n", " ")
    text = clean_text(text)
    if text is None:
        return None
    return MULTI_WHITESPACE_PATTERN.sub(" ", text)
