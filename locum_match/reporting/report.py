"""Matching report: turns ranked results into CSV or JSON for human review.

Top-K rows per job, summary stats over the *full* result set. Writing the
content anywhere is the caller's job.
"""

import csv
import io
import json
import logging
import statistics
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from locum_match.core.config import ReportConfig
from locum_match.core.schemas import MatchingCriteria, SearchResult
from locum_match.pipeline.scorer import DURATION, EMR, LOCATION, PROVINCE, SPECIALITY
from locum_match.pipeline.search import rank_results

logger = logging.getLogger(__name__)

CORE_CATEGORIES = (LOCATION, DURATION, EMR, SPECIALITY, PROVINCE)

# Internal scores are 0-1; reviewers read them on a 0-5 scale.
HUMAN_SCALE = 5.0

_MISSING_LABELS = {
    LOCATION: "no physician location available",
    DURATION: "no physician availability declared",
    EMR: "no EMR data for job or physician",
    PROVINCE: "no province data for job or physician",
}


class ReportStats(BaseModel):
    """Summary over every qualified physician for one job."""

    total_qualified: int
    min_score: float | None = None
    max_score: float | None = None
    mean_score: float | None = None
    median_score: float | None = None
    missing_data: dict[str, float] = Field(default_factory=dict)
    missing_data_flags: list[str] = Field(default_factory=list)


class ReportJobSection(BaseModel):
    criteria: MatchingCriteria
    top_results: list[SearchResult]
    stats: ReportStats


class MatchingReport(BaseModel):
    generated_at: datetime
    options: ReportConfig
    sections: list[ReportJobSection]
    content: str


def compute_stats(results: list[SearchResult]) -> ReportStats:
    """Score spread and missing-data percentages across all results."""
    if not results:
        return ReportStats(total_qualified=0)

    scores = [r.score for r in results]
    missing: dict[str, float] = {}
    flags: list[str] = []
    for category in sorted({c for r in results for c in r.missing_data}):
        count = sum(1 for r in results if category in r.missing_data)
        pct = round(100.0 * count / len(results), 1)
        missing[category] = pct
        label = _MISSING_LABELS.get(category, f"no {category} data")
        flags.append(f"{label}: {pct:.0f}%")

    return ReportStats(
        total_qualified=len(results),
        min_score=min(scores),
        max_score=max(scores),
        mean_score=statistics.fmean(scores),
        median_score=statistics.median(scores),
        missing_data=missing,
        missing_data_flags=flags,
    )


def build_section(
    criteria: MatchingCriteria,
    results: list[SearchResult],
    top_k: int,
) -> ReportJobSection:
    ranked = rank_results(results)
    return ReportJobSection(
        criteria=criteria,
        top_results=ranked[:top_k],
        stats=compute_stats(ranked),
    )


def generate_matching_report(
    sections: Iterable[tuple[MatchingCriteria, list[SearchResult]]],
    options: ReportConfig | None = None,
    now: datetime | None = None,
) -> MatchingReport:
    """Build per-job sections and render them in the configured format."""
    options = options or ReportConfig()
    built = [build_section(c, r, options.top_k) for c, r in sections]

    if options.format == "json":
        content = _render_json(built, options)
    else:
        content = _render_csv(built, options)

    logger.info("Generated %s report with %d job sections", options.format, len(built))
    return MatchingReport(
        generated_at=now or datetime.now(),
        options=options,
        sections=built,
        content=content,
    )


def _breakdown_columns(sections: list[ReportJobSection]) -> list[str]:
    extra = sorted(
        {c for s in sections for r in s.top_results for c in r.breakdown} - set(CORE_CATEGORIES),
    )
    return [*CORE_CATEGORIES, *extra]


def _fmt(value: float | None, digits: int = 4) -> str:
    return "" if value is None else f"{value:.{digits}f}"


def _job_details(criteria: MatchingCriteria) -> str:
    parts = [
        f"speciality={criteria.med_speciality}",
        f"province={criteria.province or ''}",
        f"dates={criteria.date_range.start.date()}..{criteria.date_range.end.date()}",
    ]
    if criteria.emr:
        parts.append(f"emr={criteria.emr}")
    return "; ".join(parts)


def _summary_details(stats: ReportStats) -> str:
    parts = [
        f"qualified={stats.total_qualified}",
        f"min={_fmt(stats.min_score, 2)}",
        f"median={_fmt(stats.median_score, 2)}",
        f"max={_fmt(stats.max_score, 2)}",
        f"mean={_fmt(stats.mean_score, 2)}",
    ]
    if stats.missing_data_flags:
        parts.append("flags=" + ", ".join(stats.missing_data_flags))
    return "; ".join(parts)


def _render_csv(sections: list[ReportJobSection], options: ReportConfig) -> str:
    columns = _breakdown_columns(sections) if options.include_breakdown else []
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(
        ["row_type", "job_id", "rank", "physician_id", "score", "score_0_5", *columns, "details"],
    )
    blanks = [""] * len(columns)

    for section in sections:
        job_id = section.criteria.job_id or ""
        writer.writerow(["job", job_id, "", "", "", "", *blanks, _job_details(section.criteria)])
        for rank, r in enumerate(section.top_results, start=1):
            writer.writerow([
                "physician",
                job_id,
                rank,
                r.physician_id,
                _fmt(r.score),
                _fmt(r.score * HUMAN_SCALE, 2),
                *(_fmt(r.breakdown.get(c)) for c in columns),
                "missing: " + ", ".join(r.missing_data) if r.missing_data else "",
            ])
        if options.include_summary_stats:
            writer.writerow(
                ["summary", job_id, "", "", "", "", *blanks, _summary_details(section.stats)],
            )
    return buf.getvalue()


def _render_json(sections: list[ReportJobSection], options: ReportConfig) -> str:
    data = []
    for section in sections:
        entry = section.model_dump(mode="json", by_alias=True)
        if not options.include_breakdown:
            for r in entry["top_results"]:
                r.pop("breakdown", None)
        if not options.include_summary_stats:
            entry.pop("stats", None)
        data.append(entry)
    return json.dumps({"sections": data}, indent=2)
