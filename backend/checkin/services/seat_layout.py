"""
Seat layouts and the batch seat-assignment algorithm.

Everything in this module is pure: it works on plain registrant objects
and returns plans, the database side lives in `seat_assignment`.

Layouts:
- Exam: zones A-F, 100 seats each, labelled by a running number
  (A001-A100, B101-B200, ... F501-F600).
- Theater (graduation / event): zones A and B, rows 1-18, columns 1-10,
  minus the 12 AJ seats. Seats are ordered row by row, zone A's ten
  seats before zone B's within each row. Five VIP rows sit in front of
  row 1 and are never auto-assigned either.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from checkin.exceptions import ConfigurationError
from checkin.models import ActivityType
from checkin.services.labels import SeatLabel
from checkin.utils.logger import logger

EXAM_ZONES = ("A", "B", "C", "D", "E", "F")
EXAM_SEATS_PER_ZONE = 100
EXAM_CAPACITY = len(EXAM_ZONES) * EXAM_SEATS_PER_ZONE

THEATER_ZONES = ("A", "B")
THEATER_ROWS = 18
THEATER_COLUMNS = 10
VIP_ROWS = 5

# Reserved seats and their chart names
AJ_SEATS = {
    "A1-1": "AJ1", "B1-10": "AJ2",
    "A4-1": "AJ3", "B4-10": "AJ4",
    "A7-1": "AJ5", "B7-10": "AJ6",
    "A10-1": "AJ7", "B10-10": "AJ8",
    "A13-1": "AJ9", "B13-10": "AJ10",
    "A16-1": "AJ11", "B16-10": "AJ12",
}

MISSING_IMPORT_ORDER = 999999

SORT_KEYS = ("import_order", "full_name", "student_id", "national_id", "course")


class Registrant(Protocol):
    id: Any
    course: Optional[str]
    import_order: Optional[int]


@dataclass(frozen=True)
class SeatPlan:
    assignments: list[tuple[Any, str]]  # (registrant id, seat label), in rank order
    unassigned: list[Any] = field(default_factory=list)  # registrant ids beyond capacity


# =============================================================================
# Seat spaces
# =============================================================================

def exam_seat(rank: int) -> Optional[str]:
    """Seat label for the 0-based rank, or None past the last exam seat."""
    if rank < 0 or rank >= EXAM_CAPACITY:
        return None
    zone_index, seat_in_zone = divmod(rank, EXAM_SEATS_PER_ZONE)
    return SeatLabel.exam(
        EXAM_ZONES[zone_index],
        zone_index * EXAM_SEATS_PER_ZONE + seat_in_zone + 1,
    ).format()


def exam_seats() -> list[str]:
    return [exam_seat(rank) for rank in range(EXAM_CAPACITY)]


def theater_seats(include_reserved: bool = False) -> list[str]:
    seats = []
    for row in range(1, THEATER_ROWS + 1):
        for zone in THEATER_ZONES:
            for column in range(1, THEATER_COLUMNS + 1):
                label = SeatLabel.theater(zone, row, column).format()
                if include_reserved or label not in AJ_SEATS:
                    seats.append(label)
    return seats


def seats_for(activity_type: ActivityType | str) -> list[str]:
    """Ordered list of auto-assignable seats for the activity type."""
    activity_type = ActivityType(activity_type)
    if activity_type == ActivityType.EXAM:
        return exam_seats()
    if activity_type in (ActivityType.GRADUATION, ActivityType.EVENT):
        return theater_seats()
    raise ConfigurationError("Queue activities have no seat layout")


# =============================================================================
# Ordering and assignment
# =============================================================================

def _sort_value(registrant: Any, key: str) -> Any:
    value = getattr(registrant, key, None)
    if key == "import_order":
        return MISSING_IMPORT_ORDER if value is None else value
    return str(value or "").lower()


def sort_registrants(
    registrants: Iterable[Registrant], key: str = "import_order", descending: bool = False
) -> list[Registrant]:
    """Stable sort by one of `SORT_KEYS`."""
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{key}', expected one of {SORT_KEYS}")
    return sorted(registrants, key=lambda r: _sort_value(r, key), reverse=descending)


def auto_assign(activity_type: ActivityType | str, ordered: Sequence[Registrant]) -> SeatPlan:
    """
    Map the i-th registrant to the i-th seat of the layout.

    Registrants past the layout's capacity stay unassigned; that is not
    an error.
    """
    seats = seats_for(activity_type)
    assignments = [(registrant.id, seat) for registrant, seat in zip(ordered, seats)]
    unassigned = [registrant.id for registrant in ordered[len(seats):]]
    if unassigned:
        logger.warning(
            f"{len(unassigned)} registrants left without a seat "
            f"({ActivityType(activity_type).value} layout holds {len(seats)})"
        )
    return SeatPlan(assignments, unassigned)


# =============================================================================
# Seating chart
# =============================================================================

def row_dominant_course(row: int, courses_by_seat: dict[str, Optional[str]]) -> Optional[str]:
    """
    Course holding most seats of a theater row (both zones).

    Counted column by column, zone A's seat before zone B's; on a tie the
    course seen first wins. None for an empty row.
    """
    counts: dict[str, int] = {}
    for column in range(1, THEATER_COLUMNS + 1):
        for zone in THEATER_ZONES:
            course = courses_by_seat.get(SeatLabel.theater(zone, row, column).format())
            if course:
                counts[course] = counts.get(course, 0) + 1

    dominant, best = None, 0
    for course, count in counts.items():
        if count > best:
            dominant, best = course, count
    return dominant


def theater_chart(courses_by_seat: dict[str, Optional[str]]) -> list[dict]:
    """Rows of the theater chart, VIP rows first."""
    rows = []
    for row in range(1, VIP_ROWS + 1):
        rows.append(
            {
                "label": f"VIP{row * 2 - 1}",
                "vip": True,
                "course": None,
                "seats": [
                    {"label": label, "course": courses_by_seat.get(label)}
                    for label in (
                        SeatLabel.theater(zone, row, column, vip=True).format()
                        for zone in THEATER_ZONES
                        for column in range(1, THEATER_COLUMNS + 1)
                    )
                ],
            }
        )
    for row in range(1, THEATER_ROWS + 1):
        seats = []
        for zone in THEATER_ZONES:
            for column in range(1, THEATER_COLUMNS + 1):
                label = SeatLabel.theater(zone, row, column).format()
                seats.append(
                    {
                        "label": label,
                        "reserved": AJ_SEATS.get(label),
                        "course": courses_by_seat.get(label),
                    }
                )
        rows.append(
            {
                "label": f"A{row}",
                "vip": False,
                "course": row_dominant_course(row, courses_by_seat),
                "seats": seats,
            }
        )
    return rows


def exam_chart(courses_by_seat: dict[str, Optional[str]]) -> list[dict]:
    zones = []
    for zone_index, zone in enumerate(EXAM_ZONES):
        start = zone_index * EXAM_SEATS_PER_ZONE
        labels = [exam_seat(rank) for rank in range(start, start + EXAM_SEATS_PER_ZONE)]
        zones.append(
            {
                "zone": zone,
                "seats": [{"label": label, "course": courses_by_seat.get(label)} for label in labels],
                "occupied": sum(1 for label in labels if label in courses_by_seat),
            }
        )
    return zones


_ZONE_RE = re.compile(r"^([A-Za-z]+)")


def zone_counts(seat_numbers: Iterable[Optional[str]]) -> dict[str, int]:
    """Number of occupied seats per zone prefix ("A", "B", "VIP", ...)."""
    counts: dict[str, int] = {}
    for seat in seat_numbers:
        if not seat:
            continue
        label = SeatLabel.parse(seat)
        if label is not None:
            zone = label.zone_key
        else:
            match = _ZONE_RE.match(seat)
            zone = match.group(1).upper() if match else "Other"
        counts[zone] = counts.get(zone, 0) + 1
    return dict(sorted(counts.items()))
