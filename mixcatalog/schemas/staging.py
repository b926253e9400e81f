from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from mixcatalog.core.validation import clean_single_line, clean_text
from mixcatalog.services.external_ids import Provider

ALLOWED_URL_SCHEMES = {"http", "https"}


class RawTrackCreate(BaseModel):
    line_text: str = Field(default="", max_length=2000)
    position: int | None = Field(default=None, ge=0)
    timestamp_seconds: int | None = Field(default=None, ge=0)
    raw_artist: str | None = Field(default=None, max_length=255)
    raw_title: str | None = Field(default=None, max_length=500)
    source: str | None = Field(default=None, max_length=50)

    @field_validator("line_text")
    @classmethod
    def normalize_line(cls, v: str) -> str:
        return clean_single_line(v) or ""

    @field_validator("raw_artist", "raw_title")
    @classmethod
    def normalize_single_line_fields(cls, v: str | None) -> str | None:
        return clean_single_line(v)


class RawMixCreate(BaseModel):
    """Payload a fetch worker hands to staging."""

    provider: Provider
    source_url: str = Field(..., min_length=1, max_length=500)
    external_id: str | None = Field(default=None, max_length=255)
    raw_title: str | None = Field(default=None, max_length=500)
    raw_description: str | None = None
    raw_artist: str | None = Field(default=None, max_length=255)
    uploaded_at: datetime | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    artwork_url: str | None = Field(default=None, max_length=500)
    raw_metadata: dict[str, Any] | None = None
    tracks: list[RawTrackCreate] = Field(default_factory=list)

    @field_validator("raw_title", "raw_artist", "external_id")
    @classmethod
    def normalize_single_line_fields(cls, v: str | None) -> str | None:
        return clean_single_line(v)

    @field_validator("raw_description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        return clean_text(v)

    @field_validator("source_url", "artwork_url")
    @classmethod
    def validate_url_scheme(cls, v: str | None) -> str | None:
        if v is None:
            return v
        scheme = urlparse(v).scheme.lower()
        if scheme not in ALLOWED_URL_SCHEMES:
            raise ValueError(f"URL scheme '{scheme or '(empty)'}' is not allowed")
        return v

    @field_validator("uploaded_at")
    @classmethod
    def to_naive_utc(cls, v: datetime | None) -> datetime | None:
        if v is None or v.tzinfo is None:
            return v
        return v.astimezone(UTC).replace(tzinfo=None)
