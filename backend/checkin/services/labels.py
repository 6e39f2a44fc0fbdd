"""
Ticket and seat label value types.

Labels arrive as free text (imports, QR payloads, operator input) and are
parsed once here; the rest of the code works with the parsed fields.
"""

import re
from dataclasses import dataclass
from typing import Optional

TICKET_PAD = 3
EXAM_PAD = 3

_TICKET_RE = re.compile(r"^\s*(?P<prefix>.*?)[\s-]*(?P<number>\d+)\s*$")
_THEATER_RE = re.compile(r"^(?P<vip>VIP_)?(?P<zone>[A-Z])(?P<row>\d{1,2})-(?P<column>\d{1,2})$")
_EXAM_RE = re.compile(r"^(?P<zone>[A-Z])(?P<number>\d{3})$")


@dataclass(frozen=True)
class TicketLabel:
    """A queue ticket such as ``ANE-007``."""

    prefix: str
    number: int

    def format(self) -> str:
        if not self.prefix:
            return f"{self.number:0{TICKET_PAD}d}"
        return f"{self.prefix}-{self.number:0{TICKET_PAD}d}"

    def __str__(self) -> str:
        return self.format()

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["TicketLabel"]:
        """
        Parse a ticket label; the number is the trailing run of digits.

        Returns None when the value carries no number at all.
        """
        if not value:
            return None
        match = _TICKET_RE.match(value)
        if match is None:
            return None
        return cls(prefix=match.group("prefix").strip(), number=int(match.group("number")))


def format_ticket(prefix: str, number: int) -> str:
    return TicketLabel(prefix, number).format()


def ticket_number(queue_number: Optional[int], display_queue_number: Optional[str]) -> Optional[int]:
    """Best numeric value of a ticket, preferring the larger of both fields."""
    candidates = []
    if queue_number is not None:
        candidates.append(queue_number)
    label = TicketLabel.parse(display_queue_number)
    if label is not None:
        candidates.append(label.number)
    return max(candidates) if candidates else None


@dataclass(frozen=True)
class SeatLabel:
    """
    A seat in one of the two coordinate systems.

    Theater seats have `row` and `column` (``A1-10``, ``VIP_B3-2``),
    exam seats a running `number` (``C250``).
    """

    zone: str
    row: Optional[int] = None
    column: Optional[int] = None
    number: Optional[int] = None
    vip: bool = False

    @property
    def is_exam(self) -> bool:
        return self.number is not None

    @property
    def zone_key(self) -> str:
        """Grouping key for per-zone statistics."""
        return "VIP" if self.vip else self.zone

    def format(self) -> str:
        if self.is_exam:
            return f"{self.zone}{self.number:0{EXAM_PAD}d}"
        prefix = "VIP_" if self.vip else ""
        return f"{prefix}{self.zone}{self.row}-{self.column}"

    def __str__(self) -> str:
        return self.format()

    @classmethod
    def theater(cls, zone: str, row: int, column: int, vip: bool = False) -> "SeatLabel":
        return cls(zone=zone, row=row, column=column, vip=vip)

    @classmethod
    def exam(cls, zone: str, number: int) -> "SeatLabel":
        return cls(zone=zone, number=number)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SeatLabel"]:
        if not value:
            return None
        value = value.strip().upper()
        match = _THEATER_RE.match(value)
        if match:
            return cls.theater(
                match.group("zone"),
                int(match.group("row")),
                int(match.group("column")),
                vip=bool(match.group("vip")),
            )
        match = _EXAM_RE.match(value)
        if match:
            return cls.exam(match.group("zone"), int(match.group("number")))
        return None
