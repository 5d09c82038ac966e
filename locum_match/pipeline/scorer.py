"""Category scorers: each rates one dimension of physician/job fit in [0, 1].

Missing data the platform failed to collect resolves to NEUTRAL_SCORE rather
than penalizing or rewarding the physician. Scorers are independent: none
reads another's output.
"""

import logging
import math
from collections.abc import Callable
from difflib import SequenceMatcher

from locum_match.core.config import ScoringConfig
from locum_match.core.schemas import (
    DateRange,
    GeoCoordinates,
    MatchingCriteria,
    Physician,
)
from locum_match.pipeline.eligibility import normalize

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
EARTH_RADIUS_KM = 6371.0

LOCATION = "location"
DURATION = "duration"
EMR = "emr"
PROVINCE = "province"
SPECIALITY = "speciality"


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def haversine_km(a: GeoCoordinates, b: GeoCoordinates) -> float:
    """Great-circle distance between two points on a spherical Earth."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def distance_decay(distance_km: float, midpoint_km: float) -> float:
    """Smooth drop-off: 1.0 at 0 km, 0.5 at the midpoint, tending to 0."""
    return clamp01(1.0 / (1.0 + (max(0.0, distance_km) / midpoint_km) ** 2))


def score_location(
    physician: Physician,
    job_location: GeoCoordinates,
    config: ScoringConfig,
) -> float:
    """Score proximity. No hard radius; physicians without a location get neutral."""
    if physician.location is None:
        return NEUTRAL_SCORE
    distance = haversine_km(physician.location, job_location)
    return distance_decay(distance, config.location_midpoint_km)


def duration_bucket(days: float, config: ScoringConfig) -> str | None:
    """Label of the first configured bucket that fits a job of ``days`` length."""
    for bucket in config.duration_buckets:
        if bucket.max_days is None or days <= bucket.max_days:
            return bucket.label
    return None


def score_duration(
    physician: Physician,
    job_date_range: DateRange,
    config: ScoringConfig,
) -> float:
    """Score how much of the job's date range the best availability window covers.

    No declared availability is neutral; declared availability that never
    overlaps the job scores 0.
    """
    if not physician.availability:
        return NEUTRAL_SCORE

    job_days = job_date_range.days
    if job_days <= 0:
        covered = any(
            w.start <= job_date_range.start <= w.end for w in physician.availability
        )
        ratio = 1.0 if covered else 0.0
    else:
        best = max(w.overlap_days(job_date_range) for w in physician.availability)
        ratio = best / job_days

    if ratio <= 0:
        return 0.0

    bucket = duration_bucket(job_days, config)
    if bucket is not None:
        preferred = {normalize(d) for d in physician.locum_durations}
        if normalize(bucket) in preferred:
            ratio += config.duration_bucket_bonus

    return clamp01(ratio)


def _emr_fuzzy_match(a: str, b: str, threshold: float) -> bool:
    if a in b or b in a:
        return True
    return SequenceMatcher(None, a, b).ratio() >= threshold


def score_emr(
    physician_emrs: list[str],
    job_emr: str | None,
    config: ScoringConfig,
) -> float:
    """Score EMR familiarity: exact 1.0, close variant partial, otherwise 0."""
    wanted = normalize(job_emr)
    known = [normalize(e) for e in physician_emrs if normalize(e)]
    if not wanted or not known:
        return NEUTRAL_SCORE
    if wanted in known:
        return 1.0
    if any(_emr_fuzzy_match(wanted, k, config.emr_fuzzy_threshold) for k in known):
        return clamp01(config.emr_partial_score)
    return 0.0


def score_province(
    physician: Physician,
    job_province: str | None,
    config: ScoringConfig,
) -> float:
    if job_province is None:
        return NEUTRAL_SCORE
    if not physician.preferred_provinces:
        return NEUTRAL_SCORE
    if job_province in physician.preferred_provinces:
        return 1.0
    if physician.medical_province == job_province:
        return clamp01(config.province_license_score)
    return 0.0


def score_speciality(
    physician: Physician,
    job_speciality: str,
    config: ScoringConfig,
) -> float:
    """Exact speciality match, or partial credit from the related-speciality table."""
    mine = normalize(physician.med_speciality)
    theirs = normalize(job_speciality)
    if mine == theirs:
        return 1.0
    for source, related in config.related_specialities.items():
        source_key = normalize(source)
        for other, score in related.items():
            other_key = normalize(other)
            if {source_key, other_key} == {mine, theirs}:
                return clamp01(score)
    return 0.0


# A category scorer returns None when it does not apply to this pair.
CategoryScorer = Callable[[Physician, MatchingCriteria, ScoringConfig], float | None]

CATEGORY_SCORERS: dict[str, CategoryScorer] = {
    LOCATION: lambda p, c, cfg: score_location(p, c.location, cfg),
    DURATION: lambda p, c, cfg: score_duration(p, c.date_range, cfg),
    EMR: lambda p, c, cfg: score_emr(p.emr_systems, c.emr, cfg),
    PROVINCE: lambda p, c, cfg: score_province(p, c.province, cfg),
    SPECIALITY: lambda p, c, cfg: score_speciality(p, c.med_speciality, cfg),
}


def score_breakdown(
    physician: Physician,
    criteria: MatchingCriteria,
    config: ScoringConfig,
    scorers: dict[str, CategoryScorer] | None = None,
) -> dict[str, float]:
    """Run every category scorer; skipped categories are left out of the result."""
    breakdown: dict[str, float] = {}
    for category, scorer in (scorers or CATEGORY_SCORERS).items():
        value = scorer(physician, criteria, config)
        if value is None:
            continue
        breakdown[category] = clamp01(value)
    return breakdown


def missing_data_categories(
    physician: Physician,
    criteria: MatchingCriteria,
) -> tuple[str, ...]:
    """Categories that resolved to NEUTRAL_SCORE because data was absent."""
    missing: list[str] = []
    if physician.location is None:
        missing.append(LOCATION)
    if not physician.availability:
        missing.append(DURATION)
    if not normalize(criteria.emr) or not any(normalize(e) for e in physician.emr_systems):
        missing.append(EMR)
    if criteria.province is None or not physician.preferred_provinces:
        missing.append(PROVINCE)
    return tuple(missing)
