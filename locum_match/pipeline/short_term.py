"""Short-term job rule: decides whether a posting triggers an immediate run.

Rules are OR'd together; each is disabled when its setting is null or empty.
"""

import logging
from datetime import datetime, timedelta

from locum_match.core.config import ShortTermConfig
from locum_match.core.schemas import LocumJob

logger = logging.getLogger(__name__)


def is_short_term_job(
    job: LocumJob,
    config: ShortTermConfig,
    now: datetime | None = None,
) -> bool:
    """Return True if the job is short, flagged as urgent, or starts soon."""
    if config.max_duration_days is not None and job.date_range.days < config.max_duration_days:
        logger.debug("Job %s short-term: %.1f days", job.id, job.date_range.days)
        return True

    schedule = (job.schedule or "").lower()
    if schedule:
        for kw in config.schedule_keywords:
            if kw.strip() and kw.lower().strip() in schedule:
                logger.debug("Job %s short-term: schedule keyword '%s'", job.id, kw)
                return True

    if config.max_lead_days is not None:
        now = _align(now or datetime.now(), job.date_range.start)
        if job.date_range.start <= now + timedelta(days=config.max_lead_days):
            logger.debug("Job %s short-term: starts %s", job.id, job.date_range.start)
            return True

    return False


def _align(now: datetime, reference: datetime) -> datetime:
    """Make ``now`` comparable with ``reference``; naive values are local time."""
    if reference.tzinfo is None:
        return now if now.tzinfo is None else now.astimezone().replace(tzinfo=None)
    return now.astimezone(reference.tzinfo)
