"""Configuration models and YAML loader for the locum matching engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_WEIGHTS: dict[str, float] = {
    "speciality": 3.0,
    "location": 3.0,
    "duration": 2.0,
    "province": 2.0,
    "emr": 1.0,
}


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/locum_match.db"


class EligibilityConfig(BaseModel):
    """Hard-filter toggles applied before scoring."""

    check_looking_for_locums: bool = True
    check_conflicts: bool = True
    conflict_statuses: list[str] = Field(
        default_factory=lambda: ["Pending", "In Progress", "Ongoing"],
    )


class DurationBucket(BaseModel):
    """A named locum-length bucket, matched against physician preferences."""

    label: str
    max_days: float | None = None

    @field_validator("label")
    @classmethod
    def label_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "bucket label must not be empty"
            raise ValueError(msg)
        return v.strip()


def _default_buckets() -> list[DurationBucket]:
    return [
        DurationBucket(label="1 day to 2 weeks", max_days=14),
        DurationBucket(label="2 weeks to 1 month", max_days=31),
        DurationBucket(label="1-3 months", max_days=92),
        DurationBucket(label="3-6 months", max_days=183),
        DurationBucket(label="6+ months"),
    ]


class ScoringConfig(BaseModel):
    """Category weights and scorer tuning knobs."""

    weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    location_midpoint_km: float = Field(default=100.0, gt=0.0)
    emr_fuzzy_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    emr_partial_score: float = Field(default=0.8, ge=0.0, le=1.0)
    province_license_score: float = Field(default=0.8, ge=0.0, le=1.0)
    duration_bucket_bonus: float = Field(default=0.1, ge=0.0, le=1.0)
    duration_buckets: list[DurationBucket] = Field(default_factory=_default_buckets)
    # speciality -> {related speciality: partial score}
    related_specialities: dict[str, dict[str, float]] = Field(default_factory=dict)

    @field_validator("weights")
    @classmethod
    def weights_usable(cls, v: dict[str, float]) -> dict[str, float]:
        missing = [c for c in DEFAULT_WEIGHTS if c not in v]
        if missing:
            msg = (
                f"missing weights for categories: {', '.join(missing)} "
                "(set a weight of 0 to disable a category)"
            )
            raise ValueError(msg)
        if any(w < 0 for w in v.values()):
            msg = "category weights must be non-negative"
            raise ValueError(msg)
        if not any(w > 0 for w in v.values()):
            msg = "at least one category weight must be positive"
            raise ValueError(msg)
        return v

    @field_validator("related_specialities")
    @classmethod
    def related_scores_in_range(
        cls, v: dict[str, dict[str, float]],
    ) -> dict[str, dict[str, float]]:
        for related in v.values():
            for score in related.values():
                if not 0.0 <= score <= 1.0:
                    msg = f"related speciality score must be in [0, 1], got {score}"
                    raise ValueError(msg)
        return v


class SearchConfig(BaseModel):
    """Defaults applied when building criteria from a job."""

    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    limit: int | None = Field(default=None, ge=1)


class ShortTermConfig(BaseModel):
    """Rules deciding whether a job triggers an immediate run (OR'd together)."""

    max_duration_days: float | None = Field(default=14.0, gt=0.0)
    schedule_keywords: list[str] = Field(
        default_factory=lambda: ["on-call", "on call", "short notice", "urgent"],
    )
    max_lead_days: float | None = Field(default=7.0, ge=0.0)
    notification_threshold: float = Field(default=0.6, ge=0.0, le=1.0)


class DigestConfig(BaseModel):
    """Weekly digest settings."""

    top_n: int = Field(default=5, ge=1)
    notification_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    active_reservation_statuses: list[str] = Field(
        default_factory=lambda: ["Pending", "Awaiting Payment"],
    )


class ReportConfig(BaseModel):
    """Report generator defaults."""

    top_k: int = Field(default=10, ge=1)
    format: Literal["csv", "json"] = "csv"
    include_breakdown: bool = True
    include_summary_stats: bool = True


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    eligibility: EligibilityConfig = Field(default_factory=EligibilityConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    short_term: ShortTermConfig = Field(default_factory=ShortTermConfig)
    digest: DigestConfig = Field(default_factory=DigestConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
