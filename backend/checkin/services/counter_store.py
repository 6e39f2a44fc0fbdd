"""
Sequence counter store.

One `QueueCounter` row per (activity, course) holds the last issued ticket
number. A missing row means the counter is unknown: imports may have
issued tickets before any counter existed, so the value is recovered from
registration data before it is used.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from checkin.exceptions import TransactionConflict
from checkin.models import PROCESSED_STATUSES, QueueCounter, Registration
from checkin.services.labels import TicketLabel, ticket_number
from checkin.utils.logger import logger
from checkin.utils.timezone import utc_now


@dataclass(frozen=True)
class Known:
    value: int


@dataclass(frozen=True)
class Unknown:
    pass


CounterState = Union[Known, Unknown]

UNKNOWN = Unknown()


# =============================================================================
# Reads
# =============================================================================

async def load_counter(
    session: AsyncSession,
    activity_id: uuid.UUID,
    course: str,
) -> tuple[CounterState, Optional[QueueCounter]]:
    """
    Read the counter row, locking it where the database supports it.

    Returns the counter state plus the row (None when unknown) so the
    caller can hand it back to `write_counter`.
    """
    result = await session.execute(
        select(QueueCounter)
        .where(QueueCounter.activity_id == activity_id, QueueCounter.course == course)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return UNKNOWN, None
    return Known(row.last_number), row


async def recover_counter(session: AsyncSession, activity_id: uuid.UUID, course: str) -> int:
    """Highest ticket number found on any registration of the course (0 if none)."""
    result = await session.execute(
        select(Registration.queue_number, Registration.display_queue_number).where(
            Registration.activity_id == activity_id,
            Registration.course == course,
            or_(
                Registration.queue_number.is_not(None),
                Registration.display_queue_number.is_not(None),
            ),
        )
    )
    highest = 0
    for queue_number, display_queue_number in result.all():
        number = ticket_number(queue_number, display_queue_number)
        if number is not None and number > highest:
            highest = number
    logger.info(f"Recovered counter for course '{course}' in activity {activity_id}: {highest}")
    return highest


async def resolve_counter(state: CounterState, session: AsyncSession, activity_id: uuid.UUID, course: str) -> int:
    if isinstance(state, Known):
        return state.value
    return await recover_counter(session, activity_id, course)


async def held_numbers(session: AsyncSession, activity_id: uuid.UUID, course: str) -> set[int]:
    """Ticket numbers already consumed by checked-in (or later) registrations."""
    result = await session.execute(
        select(Registration.queue_number, Registration.display_queue_number).where(
            Registration.activity_id == activity_id,
            Registration.course == course,
            Registration.status.in_(PROCESSED_STATUSES),
        )
    )
    numbers = set()
    for queue_number, display_queue_number in result.all():
        if queue_number is not None:
            numbers.add(queue_number)
        label = TicketLabel.parse(display_queue_number)
        if label is not None:
            numbers.add(label.number)
    return numbers


def next_free_number(counter: int, held: Iterable[int]) -> int:
    """First number after `counter` that nobody holds."""
    taken = set(held)
    candidate = counter + 1
    while candidate in taken:
        candidate += 1
    return candidate


# =============================================================================
# Writes
# =============================================================================

async def write_counter(
    session: AsyncSession,
    row: Optional[QueueCounter],
    activity_id: uuid.UUID,
    course: str,
    value: int,
) -> None:
    """
    Compare-and-swap the counter to `value`.

    `row` is what `load_counter` returned. If someone else wrote the row
    (or created it) in the meantime, `TransactionConflict` is raised and
    the whole transaction must be retried.
    """
    if row is None:
        session.add(QueueCounter(activity_id=activity_id, course=course, last_number=value, version=1))
        try:
            await session.flush()
        except IntegrityError as exc:
            raise TransactionConflict(f"counter for '{course}' created concurrently") from exc
        return

    result = await session.execute(
        update(QueueCounter)
        .where(QueueCounter.id == row.id, QueueCounter.version == row.version)
        .values(last_number=value, version=row.version + 1, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TransactionConflict(f"counter for '{course}' changed concurrently")


async def set_counter(session: AsyncSession, activity_id: uuid.UUID, course: str, value: int) -> None:
    """Administrative override: the next fresh ticket will be `value + 1`."""
    if value < 0:
        raise ValueError("Counter value cannot be negative")
    _, row = await load_counter(session, activity_id, course)
    await write_counter(session, row, activity_id, course, value)
    logger.info(f"Counter for course '{course}' in activity {activity_id} set to {value}")


# =============================================================================
# Gap repair
# =============================================================================

def first_gap_counter(numbers: Iterable[int]) -> int:
    """
    Counter value that makes the next ticket the smallest missing number.

    {1, 2, 4, 5} -> 2 (next ticket 3); {1, 2, 3} -> 3; {} -> 0.
    """
    expected = 1
    for number in sorted(n for n in set(numbers) if n > 0):
        if number > expected:
            break
        expected = number + 1
    return expected - 1


def plan_counter_repair(tickets: Iterable[tuple[Optional[str], Optional[int], Optional[str]]]) -> dict[str, int]:
    """
    Compute repaired counters from (course, queue_number, display_queue_number) rows.

    Courses without any issued ticket are reset to 0.
    """
    issued: dict[str, set[int]] = {}
    for course, queue_number, display_queue_number in tickets:
        if not course:
            continue
        numbers = issued.setdefault(course, set())
        number = ticket_number(queue_number, display_queue_number)
        if number is not None:
            numbers.add(number)
    return {course: first_gap_counter(numbers) for course, numbers in issued.items()}


async def reset_all_counters(session: AsyncSession, activity_id: uuid.UUID) -> dict[str, int]:
    """
    Rewrite every counter of the activity so the next ticket fills the first gap.

    Counters of courses that no longer have registrations are dropped.
    """
    result = await session.execute(
        select(
            Registration.course,
            Registration.queue_number,
            Registration.display_queue_number,
        ).where(Registration.activity_id == activity_id)
    )
    plan = plan_counter_repair(result.all())

    for course, value in plan.items():
        _, row = await load_counter(session, activity_id, course)
        await write_counter(session, row, activity_id, course, value)

    stale = delete(QueueCounter).where(QueueCounter.activity_id == activity_id)
    if plan:
        stale = stale.where(QueueCounter.course.not_in(list(plan)))
    await session.execute(stale.execution_options(synchronize_session=False))

    logger.info(f"Counters repaired for activity {activity_id}: {plan}")
    return plan
