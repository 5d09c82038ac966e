"""Search engine: criteria + physician pool -> ranked, explainable results.

Pipeline:
  1. Eligibility filter chain
  2. Category scorers -> breakdown
  3. Weighted aggregate -> total score
  4. Threshold (criteria.threshold)
  5. Sort by score desc, physician id asc
  6. Limit (criteria.limit)

Pure and synchronous: no I/O happens here.
"""

import logging
from collections.abc import Iterable

from locum_match.core.config import Settings
from locum_match.core.schemas import (
    LocumJob,
    MatchingCriteria,
    Physician,
    Reservation,
    SearchResult,
)
from locum_match.pipeline.aggregator import aggregate_score
from locum_match.pipeline.eligibility import build_eligibility_filters, run_filter_chain
from locum_match.pipeline.scorer import missing_data_categories, score_breakdown

logger = logging.getLogger(__name__)


def rank_results(results: Iterable[SearchResult]) -> list[SearchResult]:
    """Sort by score descending; equal scores fall back to physician id ascending."""
    return sorted(results, key=lambda r: (-r.score, r.physician_id))


def score_physician(
    physician: Physician,
    criteria: MatchingCriteria,
    settings: Settings,
) -> SearchResult:
    """Score one (already eligible) physician against the criteria."""
    breakdown = score_breakdown(physician, criteria, settings.scoring)
    total = aggregate_score(breakdown, settings.scoring.weights)
    return SearchResult(
        physician_id=physician.id,
        score=total,
        breakdown=breakdown,
        missing_data=missing_data_categories(physician, criteria),
    )


def search_physicians(
    criteria: MatchingCriteria,
    physicians: list[Physician],
    settings: Settings,
    reservations: Iterable[Reservation] = (),
) -> list[SearchResult]:
    """Rank the physician pool against the criteria.

    Returns an empty list, not an error, when nobody qualifies.
    """
    filters = build_eligibility_filters(criteria, settings.eligibility, reservations)
    eligible = run_filter_chain(physicians, filters)

    results = [score_physician(p, criteria, settings) for p in eligible]

    if criteria.threshold is not None:
        results = [r for r in results if r.score >= criteria.threshold]

    ranked = rank_results(results)

    if criteria.limit is not None:
        ranked = ranked[: criteria.limit]

    logger.info(
        "Search for job %s: %d physicians, %d eligible, %d returned",
        criteria.job_id or "<ad hoc>", len(physicians), len(eligible), len(ranked),
    )
    return ranked


def build_criteria(
    job: LocumJob,
    settings: Settings,
    *,
    is_short_term: bool = False,
) -> MatchingCriteria:
    """Build search criteria from a job posting and the configured search defaults."""
    return MatchingCriteria(
        job_id=job.id,
        med_profession=job.med_profession,
        med_speciality=job.med_speciality,
        location=job.location,
        province=job.province,
        date_range=job.date_range,
        emr=job.emr,
        is_short_term=is_short_term,
        threshold=settings.search.threshold,
        limit=settings.search.limit,
    )
