"""Core data models for the locum matching engine.

Domain inputs (physicians, jobs, criteria, search results) arrive already
cleaned by the upstream normalization layer and are frozen. Run, result and
outbox records are the shapes the repositories store.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ProvinceCode = Literal[
    "AB", "BC", "MB", "NB", "NL", "NS", "NT", "NU", "ON", "PE", "QC", "SK", "YT",
]


class GeoCoordinates(BaseModel):
    """Lat/lng pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    street_number: str | None = None
    street_name: str | None = None
    city: str | None = None
    province: ProvinceCode | None = None
    postal_code: str | None = None
    country: str | None = None


class DateRange(BaseModel):
    """Closed date range. Accepts ``from``/``to`` keys from upstream records."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start: datetime = Field(alias="from")
    end: datetime = Field(alias="to")

    @model_validator(mode="after")
    def start_not_after_end(self) -> "DateRange":
        if self.start > self.end:
            msg = f"date range start {self.start} is after end {self.end}"
            raise ValueError(msg)
        return self

    @property
    def days(self) -> float:
        return (self.end - self.start).total_seconds() / 86400.0

    def overlaps(self, other: "DateRange") -> bool:
        """Open-interval overlap: ranges that only touch do not overlap."""
        return self.start < other.end and other.start < self.end

    def overlap_days(self, other: "DateRange") -> float:
        latest_start = max(self.start, other.start)
        earliest_end = min(self.end, other.end)
        return max(0.0, (earliest_end - latest_start).total_seconds() / 86400.0)


class AvailabilityWindow(DateRange):
    """A declared availability window with an optional location override."""

    location: GeoCoordinates | None = None


class Physician(BaseModel):
    """Clean physician profile.

    Optional collections default to empty lists; an empty list means the
    platform holds no data, which the scorers treat as neutral.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    first_name: str = ""
    last_name: str = ""
    med_profession: str
    med_speciality: str
    is_looking_for_locums: bool = True
    location: GeoCoordinates | None = None
    work_address: Address | None = None
    medical_province: ProvinceCode | None = None
    preferred_provinces: list[ProvinceCode] = Field(default_factory=list)
    emr_systems: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    availability: list[AvailabilityWindow] = Field(default_factory=list)
    locum_durations: list[str] = Field(default_factory=list)
    availability_types: list[str] = Field(default_factory=list)
    is_profile_complete: bool = False
    is_onboarding_completed: bool = False


class LocumJob(BaseModel):
    """Clean locum job posting."""

    model_config = ConfigDict(frozen=True)

    id: str
    reference: str = ""
    post_title: str = ""
    med_profession: str
    med_speciality: str
    location: GeoCoordinates
    full_address: Address = Field(default_factory=Address)
    date_range: DateRange
    job_type: str = ""
    emr: str | None = None
    experience: str | None = None
    locum_pay: str | None = None
    schedule: str | None = None
    locum_creator_id: str = ""
    reservation_id: str | None = None
    reservation_status: str | None = None
    facility_name: str | None = None

    @property
    def province(self) -> str | None:
        return self.full_address.province


class Reservation(BaseModel):
    """A physician booked for a locum job."""

    model_config = ConfigDict(frozen=True)

    id: str
    locum_job_id: str
    created_by: str = ""
    reserved_by: str | None = None
    status: str
    reservation_date: DateRange
    created_at: datetime = Field(default_factory=datetime.now)
    date_modified: datetime = Field(default_factory=datetime.now)


class MatchingCriteria(BaseModel):
    """What a search is looking for. Usually built from a job posting."""

    model_config = ConfigDict(frozen=True)

    job_id: str | None = None
    med_profession: str
    med_speciality: str
    location: GeoCoordinates
    province: ProvinceCode | None = None
    date_range: DateRange
    emr: str | None = None
    is_short_term: bool = False
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    limit: int | None = Field(default=None, ge=1)

    @field_validator("med_profession", "med_speciality")
    @classmethod
    def required_text(cls, v: str) -> str:
        if not v.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return v


class SearchResult(BaseModel):
    """One ranked physician.

    A category absent from ``breakdown`` was not evaluated, which is not the
    same as scoring zero.
    """

    model_config = ConfigDict(frozen=True)

    physician_id: str
    score: float = Field(ge=0.0, le=1.0)
    breakdown: dict[str, float] = Field(default_factory=dict)
    missing_data: tuple[str, ...] = ()

    @field_validator("breakdown")
    @classmethod
    def breakdown_in_range(cls, v: dict[str, float]) -> dict[str, float]:
        for category, value in v.items():
            if not 0.0 <= value <= 1.0:
                msg = f"breakdown score for '{category}' must be in [0, 1], got {value}"
                raise ValueError(msg)
        return v


# ---------------------------------------------------------------------------
# Run / outbox records
# ---------------------------------------------------------------------------


class RunType(str, Enum):
    SHORT_TERM = "SHORT_TERM"
    WEEKLY_DIGEST = "WEEKLY_DIGEST"


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)

    def can_transition_to(self, target: "RunStatus") -> bool:
        return target in _RUN_TRANSITIONS[self]


# Forward-only moves. PENDING -> FAILED covers runs that fail before starting.
_RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.FAILED}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


class MatchRun(BaseModel):
    """One execution of the matching engine."""

    id: str
    type: RunType
    status: RunStatus = RunStatus.PENDING
    job_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result_count: int | None = None


class MatchRunResult(BaseModel):
    """Persisted form of a SearchResult, tied to a run and a job."""

    run_id: str
    physician_id: str
    job_id: str
    score: float = Field(ge=0.0, le=1.0)
    breakdown: dict[str, float] = Field(default_factory=dict)
    computed_at: datetime = Field(default_factory=datetime.now)


class OutboxType(str, Enum):
    SHORT_TERM_MATCH = "SHORT_TERM_MATCH"
    WEEKLY_DIGEST = "WEEKLY_DIGEST"


class OutboxItem(BaseModel):
    """A queued notification. ``sent_at`` is None until delivery succeeds."""

    id: str
    type: OutboxType
    recipient_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    sent_at: datetime | None = None
    attempts: int = Field(default=0, ge=0)
    last_error: str | None = None
