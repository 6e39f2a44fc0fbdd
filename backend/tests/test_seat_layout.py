from dataclasses import dataclass
from typing import Optional

import pytest

from checkin.exceptions import ConfigurationError
from checkin.models import ActivityType
from checkin.services.seat_layout import (
    AJ_SEATS,
    EXAM_CAPACITY,
    auto_assign,
    exam_seat,
    row_dominant_course,
    sort_registrants,
    theater_chart,
    theater_seats,
    zone_counts,
)


@dataclass
class Person:
    id: int
    full_name: str = ""
    course: Optional[str] = None
    import_order: Optional[int] = None
    student_id: Optional[str] = None
    national_id: Optional[str] = None


def roster(n: int) -> list[Person]:
    return [Person(id=i, full_name=f"Person {i:04d}") for i in range(n)]


class TestExamLayout:
    def test_alphabetical_roster_of_250(self):
        people = sort_registrants(reversed(roster(250)), "full_name")
        plan = auto_assign(ActivityType.EXAM, people)
        seats = [seat for _, seat in plan.assignments]

        assert seats[0] == "A001"
        assert seats[99] == "A100"
        assert seats[100] == "B101"
        assert seats[249] == "B150"
        assert plan.assignments[0][0] == 0
        assert plan.unassigned == []

    def test_last_seat(self):
        assert exam_seat(599) == "F600"
        assert exam_seat(600) is None

    def test_overflow_is_left_unassigned(self):
        people = roster(EXAM_CAPACITY + 3)
        plan = auto_assign(ActivityType.EXAM, people)

        assert len(plan.assignments) == EXAM_CAPACITY
        assert plan.unassigned == [600, 601, 602]

    def test_rerun_is_identical(self):
        people = roster(120)
        assert auto_assign("exam", people) == auto_assign("exam", people)


class TestTheaterLayout:
    def test_reserved_seats_never_assigned(self):
        plan = auto_assign(ActivityType.GRADUATION, roster(500))
        assigned = {seat for _, seat in plan.assignments}

        assert not assigned & set(AJ_SEATS)
        assert len(plan.assignments) == 18 * 20 - 12
        assert len(plan.unassigned) == 500 - 348

    def test_row_major_zone_a_before_zone_b(self):
        seats = theater_seats()
        assert seats[:3] == ["A1-2", "A1-3", "A1-4"]
        assert seats[8] == "A1-10"
        assert seats[9] == "B1-1"
        assert seats[18] == "A2-1"
        assert "B1-10" not in seats

    def test_event_uses_theater_layout(self):
        plan = auto_assign(ActivityType.EVENT, roster(2))
        assert [seat for _, seat in plan.assignments] == ["A1-2", "A1-3"]

    def test_queue_activity_has_no_layout(self):
        with pytest.raises(ConfigurationError):
            auto_assign(ActivityType.QUEUE, roster(1))


class TestSorting:
    def test_missing_import_order_sorts_last(self):
        people = [Person(1, import_order=None), Person(2, import_order=5), Person(3, import_order=1)]
        assert [p.id for p in sort_registrants(people)] == [3, 2, 1]

    def test_case_insensitive_descending(self):
        people = [Person(1, full_name="alice"), Person(2, full_name="Bob"), Person(3, full_name="carol")]
        assert [p.id for p in sort_registrants(people, "full_name", descending=True)] == [3, 2, 1]

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            sort_registrants([], "seat_number")


class TestChart:
    def test_dominant_course_on_empty_row(self):
        assert row_dominant_course(3, {}) is None

    def test_dominant_course_majority(self):
        seats = {"A2-1": "PED", "B2-1": "MED", "A2-2": "MED", "B2-5": "PED", "B2-6": "MED"}
        assert row_dominant_course(2, seats) == "MED"

    def test_dominant_course_tie_goes_to_first_seen(self):
        seats = {"B5-1": "MED", "A5-2": "PED", "A5-3": "MED", "B5-3": "PED"}
        assert row_dominant_course(5, seats) == "MED"

    def test_theater_chart_rows(self):
        rows = theater_chart({"A1-2": "PED", "VIP_A1-1": "Guest"})
        assert [row["label"] for row in rows[:5]] == ["VIP1", "VIP3", "VIP5", "VIP7", "VIP9"]
        assert rows[0]["seats"][0] == {"label": "VIP_A1-1", "course": "Guest"}
        assert rows[5]["label"] == "A1"
        assert rows[5]["course"] == "PED"
        assert rows[5]["seats"][0]["reserved"] == "AJ1"
        assert len(rows) == 5 + 18

    def test_zone_counts(self):
        assert zone_counts(["A1-2", "A3-4", "B1-1", "VIP_A1-1", None, "12"]) == {
            "A": 2,
            "B": 1,
            "Other": 1,
            "VIP": 1,
        }

    def test_zone_counts_follow_parsed_labels(self):
        # Lower-case input, exam labels and free-text stage seats
        assert zone_counts(["vip_b2-3", "c250", "C251", "Stage left"]) == {
            "C": 2,
            "STAGE": 1,
            "VIP": 1,
        }
