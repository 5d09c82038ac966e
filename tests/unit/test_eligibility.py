"""Tests for the eligibility filter chain: each filter in isolation + full predicate."""

from datetime import datetime

import pytest

from locum_match.core.config import EligibilityConfig
from locum_match.core.schemas import (
    DateRange,
    GeoCoordinates,
    MatchingCriteria,
    Physician,
    Reservation,
)
from locum_match.pipeline.eligibility import (
    LookingForLocumsFilter,
    ProfessionFilter,
    ReservationConflictFilter,
    SpecialityFilter,
    _PhysicianFilter,
    build_eligibility_filters,
    is_eligible_physician,
    normalize,
    run_filter_chain,
)

JOB_RANGE = DateRange(start=datetime(2025, 7, 15), end=datetime(2025, 7, 21))


def _physician(
    *,
    id: str = "p1",
    med_profession: str = "Physician",
    med_speciality: str = "Family Medicine",
    is_looking_for_locums: bool = True,
) -> Physician:
    return Physician(
        id=id,
        med_profession=med_profession,
        med_speciality=med_speciality,
        is_looking_for_locums=is_looking_for_locums,
    )


def _criteria() -> MatchingCriteria:
    return MatchingCriteria(
        med_profession="Physician",
        med_speciality="Family Medicine",
        location=GeoCoordinates(lat=43.65, lng=-79.38),
        date_range=JOB_RANGE,
    )


def _reservation(
    *,
    reserved_by: str | None = "p1",
    status: str = "Ongoing",
    start: datetime = datetime(2025, 7, 18),
    end: datetime = datetime(2025, 7, 25),
) -> Reservation:
    return Reservation(
        id="r1",
        locum_job_id="other-job",
        reserved_by=reserved_by,
        status=status,
        reservation_date=DateRange(start=start, end=end),
    )


class TestNormalize:
    def test_trims_and_casefolds(self) -> None:
        assert normalize("  Family   MEDICINE ") == "family medicine"

    def test_none_and_empty(self) -> None:
        assert normalize(None) == ""
        assert normalize("   ") == ""


class TestProfessionFilter:
    def test_case_insensitive(self) -> None:
        f = ProfessionFilter("physician")
        assert f.accepts(_physician(med_profession=" PHYSICIAN "))

    def test_removes_other_professions(self) -> None:
        f = ProfessionFilter("Physician")
        result = f([_physician(id="a"), _physician(id="b", med_profession="Recruiter")])
        assert [p.id for p in result] == ["a"]


class TestSpecialityFilter:
    def test_case_insensitive(self) -> None:
        assert SpecialityFilter("Family Medicine").accepts(_physician(med_speciality="family medicine"))

    def test_mismatch(self) -> None:
        assert not SpecialityFilter("Family Medicine").accepts(
            _physician(med_speciality="Emergency Medicine"),
        )


class TestLookingForLocumsFilter:
    def test_removes_not_looking(self) -> None:
        f = LookingForLocumsFilter()
        result = f([_physician(id="a"), _physician(id="b", is_looking_for_locums=False)])
        assert [p.id for p in result] == ["a"]


class TestReservationConflictFilter:
    def test_overlapping_active_reservation_conflicts(self) -> None:
        f = ReservationConflictFilter(JOB_RANGE, [_reservation()], ["Ongoing"])
        assert not f.accepts(_physician())

    def test_other_physician_not_affected(self) -> None:
        f = ReservationConflictFilter(JOB_RANGE, [_reservation(reserved_by="p2")], ["Ongoing"])
        assert f.accepts(_physician())

    def test_touching_dates_are_not_a_conflict(self) -> None:
        r = _reservation(start=datetime(2025, 7, 21), end=datetime(2025, 7, 28))
        f = ReservationConflictFilter(JOB_RANGE, [r], ["Ongoing"])
        assert f.accepts(_physician())

    def test_inactive_status_ignored(self) -> None:
        f = ReservationConflictFilter(JOB_RANGE, [_reservation(status="Cancelled")], ["Ongoing"])
        assert f.accepts(_physician())

    def test_status_match_case_insensitive(self) -> None:
        f = ReservationConflictFilter(JOB_RANGE, [_reservation(status="in progress")], ["In Progress"])
        assert not f.accepts(_physician())

    def test_unassigned_reservation_ignored(self) -> None:
        f = ReservationConflictFilter(JOB_RANGE, [_reservation(reserved_by=None)], ["Ongoing"])
        assert f.accepts(_physician())


class TestIsEligiblePhysician:
    def test_eligible(self) -> None:
        assert is_eligible_physician(_physician(), _criteria(), EligibilityConfig())

    def test_wrong_speciality(self) -> None:
        p = _physician(med_speciality="Radiology")
        assert not is_eligible_physician(p, _criteria(), EligibilityConfig())

    def test_not_looking_excluded_by_default(self) -> None:
        p = _physician(is_looking_for_locums=False)
        assert not is_eligible_physician(p, _criteria(), EligibilityConfig())

    def test_looking_check_can_be_disabled(self) -> None:
        p = _physician(is_looking_for_locums=False)
        config = EligibilityConfig(check_looking_for_locums=False)
        assert is_eligible_physician(p, _criteria(), config)

    def test_conflict_excludes(self) -> None:
        assert not is_eligible_physician(
            _physician(), _criteria(), EligibilityConfig(), [_reservation()],
        )

    def test_conflict_check_can_be_disabled(self) -> None:
        config = EligibilityConfig(check_conflicts=False)
        assert is_eligible_physician(_physician(), _criteria(), config, [_reservation()])


class TestFilterChain:
    def test_build_respects_toggles(self) -> None:
        config = EligibilityConfig(check_looking_for_locums=False, check_conflicts=False)
        filters = build_eligibility_filters(_criteria(), config)
        assert [type(f) for f in filters] == [ProfessionFilter, SpecialityFilter]

    def test_full_chain(self) -> None:
        physicians = [
            _physician(id="ok"),
            _physician(id="recruiter", med_profession="Recruiter"),
            _physician(id="radiology", med_speciality="Radiology"),
            _physician(id="idle", is_looking_for_locums=False),
            _physician(id="booked"),
        ]
        filters = build_eligibility_filters(
            _criteria(), EligibilityConfig(), [_reservation(reserved_by="booked")],
        )
        result = run_filter_chain(physicians, filters)
        assert [p.id for p in result] == ["ok"]

    def test_empty_chain_passes_all(self) -> None:
        physicians = [_physician(id="a"), _physician(id="b")]
        assert run_filter_chain(physicians, []) == physicians

    def test_filter_must_define_accepts(self) -> None:
        class Incomplete(_PhysicianFilter):
            name = "Incomplete"

        with pytest.raises(TypeError):
            Incomplete()  # type: ignore[abstract]
