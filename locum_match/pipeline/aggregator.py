"""Weighted combination of category scores into one total.

Weights need not sum to 1. Only categories that were actually scored (present
in the breakdown) and carry a positive weight enter the numerator and the
denominator, so a skipped category never counts as zero.
"""

import logging
from collections.abc import Mapping

logger = logging.getLogger(__name__)


def aggregate_score(breakdown: Mapping[str, float], weights: Mapping[str, float]) -> float:
    """Return the weighted mean of the applicable categories, clamped to [0, 1].

    Returns 0.0 when no scored category has a positive weight.
    """
    numerator = 0.0
    denominator = 0.0
    for category, value in breakdown.items():
        weight = weights.get(category, 0.0)
        if weight <= 0:
            continue
        numerator += weight * value
        denominator += weight

    if denominator == 0:
        logger.debug("No weighted categories in breakdown %s", sorted(breakdown))
        return 0.0
    return max(0.0, min(1.0, numerator / denominator))
