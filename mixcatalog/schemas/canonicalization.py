from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from mixcatalog.core.config import Settings


class CanonicalizationOptions(BaseModel):
    """Per-run options: processing mode and auto-verification policy."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["backfill", "rolling"] = "backfill"
    auto_verify_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    system_user_id: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CanonicalizationOptions":
        return cls(
            mode=settings.canonicalization_mode,
            auto_verify_threshold=settings.auto_verify_threshold,
            system_user_id=settings.system_user_id,
        )


class RawMixStats(BaseModel):
    pending: int = 0
    processing: int = 0
    canonicalized: int = 0
    failed: int = 0
    total: int = 0
    completion_rate: float = 0.0


class RunSummary(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duplicates: int = 0
    tracks_created: int = 0
    tracks_matched: int = 0
    artists_created: int = 0
    aliases_created: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of processed mixes that succeeded, one decimal place."""
        if not self.processed:
            return 0.0
        return round(self.succeeded / self.processed * 100, 1)
