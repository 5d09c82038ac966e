"""Hard eligibility filters applied before any scoring.

Filter order:
  1. ProfessionFilter         : case-insensitive exact match
  2. SpecialityFilter         : case-insensitive exact match
  3. LookingForLocumsFilter   : optional (eligibility.check_looking_for_locums)
  4. ReservationConflictFilter: optional (eligibility.check_conflicts)
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Iterable

from locum_match.core.config import EligibilityConfig
from locum_match.core.schemas import DateRange, MatchingCriteria, Physician, Reservation

logger = logging.getLogger(__name__)

# A filter is a callable that takes physicians and returns a subset.
Filter = Callable[[list[Physician]], list[Physician]]


def normalize(value: str | None) -> str:
    """Trim, case-fold and collapse inner whitespace."""
    if not value:
        return ""
    return " ".join(value.split()).casefold()


class _PhysicianFilter(ABC):
    """Base for filters that decide one physician at a time."""

    name = "filter"

    @abstractmethod
    def accepts(self, physician: Physician) -> bool:
        """Return True to keep the physician."""

    def __call__(self, physicians: list[Physician]) -> list[Physician]:
        result = [p for p in physicians if self.accepts(p)]
        dropped = len(physicians) - len(result)
        if dropped:
            logger.debug("%s: removed %d physicians", self.name, dropped)
        return result


class ProfessionFilter(_PhysicianFilter):
    name = "ProfessionFilter"

    def __init__(self, profession: str) -> None:
        self._profession = normalize(profession)

    def accepts(self, physician: Physician) -> bool:
        return normalize(physician.med_profession) == self._profession


class SpecialityFilter(_PhysicianFilter):
    name = "SpecialityFilter"

    def __init__(self, speciality: str) -> None:
        self._speciality = normalize(speciality)

    def accepts(self, physician: Physician) -> bool:
        return normalize(physician.med_speciality) == self._speciality


class LookingForLocumsFilter(_PhysicianFilter):
    name = "LookingForLocumsFilter"

    def accepts(self, physician: Physician) -> bool:
        return physician.is_looking_for_locums


class ReservationConflictFilter(_PhysicianFilter):
    """Remove physicians already booked for dates overlapping the job.

    Only reservations whose status is in ``statuses`` count as bookings.
    """

    name = "ReservationConflictFilter"

    def __init__(
        self,
        date_range: DateRange,
        reservations: Iterable[Reservation],
        statuses: Iterable[str],
    ) -> None:
        self._date_range = date_range
        active = {normalize(s) for s in statuses}
        self._booked: dict[str, list[DateRange]] = defaultdict(list)
        for r in reservations:
            if r.reserved_by and normalize(r.status) in active:
                self._booked[r.reserved_by].append(r.reservation_date)

    def accepts(self, physician: Physician) -> bool:
        return not any(
            booked.overlaps(self._date_range) for booked in self._booked.get(physician.id, [])
        )


def build_eligibility_filters(
    criteria: MatchingCriteria,
    config: EligibilityConfig,
    reservations: Iterable[Reservation] = (),
) -> list[_PhysicianFilter]:
    """Build the filter chain for a search (order as in the module docstring)."""
    filters: list[_PhysicianFilter] = [
        ProfessionFilter(criteria.med_profession),
        SpecialityFilter(criteria.med_speciality),
    ]
    if config.check_looking_for_locums:
        filters.append(LookingForLocumsFilter())
    if config.check_conflicts:
        filters.append(
            ReservationConflictFilter(criteria.date_range, reservations, config.conflict_statuses),
        )
    return filters


def is_eligible_physician(
    physician: Physician,
    criteria: MatchingCriteria,
    config: EligibilityConfig,
    reservations: Iterable[Reservation] = (),
) -> bool:
    """Return True if the physician passes every enabled hard filter."""
    filters = build_eligibility_filters(criteria, config, reservations)
    return all(f.accepts(physician) for f in filters)


def run_filter_chain(
    physicians: list[Physician],
    filters: list[Filter],
) -> list[Physician]:
    """Apply filters in order, returning the surviving physicians."""
    result = physicians
    for f in filters:
        result = f(result)
    return result
