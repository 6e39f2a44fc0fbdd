"""
Queue allocator - issues queue tickets at check-in.

Every allocation for a course goes through a compare-and-swap on that
course's counter row, so concurrent check-ins for the same course are
serialized: one commits, the others retry with the new counter value.
"""

import uuid
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkin.config import Settings
from checkin.exceptions import (
    AlreadyProcessedError,
    ConfigurationError,
    MissingCourseError,
    NotFoundError,
    TransactionConflict,
)
from checkin.models import (
    PROCESSED_STATUSES,
    Activity,
    ActivityType,
    Course,
    QueueCounter,
    Registration,
    RegistrationStatus,
)
from checkin.services import counter_store
from checkin.services.labels import TicketLabel, format_ticket
from checkin.services.transactions import run_in_transaction
from checkin.utils.logger import logger
from checkin.utils.timezone import utc_now


@dataclass(frozen=True)
class AllocationResult:
    queue_number: int
    display_queue_number: str
    reused: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class CounterOverview:
    course: str
    last_number: Optional[int]  # None while the counter is unknown
    recovered_number: int
    next_display_queue_number: str


async def course_prefix(session: AsyncSession, course: str) -> str:
    """Short name used as ticket prefix; falls back to the course name itself."""
    result = await session.execute(select(Course.short_name).where(Course.name == course))
    short_name = result.scalar_one_or_none()
    return short_name or course


async def get_registration(
    session: AsyncSession,
    activity_id: uuid.UUID,
    registration_id: uuid.UUID,
) -> Registration:
    result = await session.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if registration is None or registration.activity_id != activity_id:
        raise NotFoundError("Registration not found in this activity")
    return registration


def ensure_can_check_in(registration: Registration) -> None:
    """Refuse registrations that are already processed or were cancelled."""
    if registration.is_processed:
        raise AlreadyProcessedError(
            f"{registration.full_name or registration.national_id} is already {registration.status}",
            status=registration.status,
            display_queue_number=registration.display_queue_number,
            seat_number=registration.seat_number,
        )
    if registration.status == RegistrationStatus.CANCELLED.value:
        raise ConfigurationError(
            f"Registration of {registration.full_name or registration.national_id} is cancelled"
        )


async def _label_consumed_by_other(
    session: AsyncSession,
    registration: Registration,
    label: str,
) -> bool:
    result = await session.execute(
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.activity_id == registration.activity_id,
            Registration.display_queue_number == label,
            Registration.status.in_(PROCESSED_STATUSES),
            Registration.id != registration.id,
        )
    )
    return result.scalar_one() > 0


async def mark_checked_in(
    session: AsyncSession,
    registration: Registration,
    **values,
) -> None:
    """
    Move a registration to checked-in, guarded on its status.

    A registration checked in by another station since it was read makes
    the update miss and raises `TransactionConflict`; the retry then sees
    the new status and reports it as already processed.
    """
    values.setdefault("status", RegistrationStatus.CHECKED_IN.value)
    values.setdefault("checked_in_at", utc_now())
    result = await session.execute(
        update(Registration)
        .where(
            Registration.id == registration.id,
            Registration.status.not_in((*PROCESSED_STATUSES, RegistrationStatus.CANCELLED.value)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TransactionConflict(f"registration {registration.id} changed concurrently")
    for key, value in values.items():
        setattr(registration, key, value)


class QueueAllocator:
    """Assigns queue numbers to registrations of queue activities."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.settings = settings

    async def allocate(self, activity_id: uuid.UUID, registration_id: uuid.UUID) -> AllocationResult:
        """Allocate a ticket in its own transaction (retried on conflict)."""

        async def work(session: AsyncSession) -> AllocationResult:
            registration = await get_registration(session, activity_id, registration_id)
            return await self.allocate_within(session, registration)

        return await run_in_transaction(
            self.session_maker,
            work,
            label=f"allocate {registration_id}",
            settings=self.settings,
        )

    async def allocate_within(self, session: AsyncSession, registration: Registration) -> AllocationResult:
        """
        Allocate inside the caller's transaction.

        The caller commits; a `TransactionConflict` raised here means the
        whole transaction has to be retried.
        """
        ensure_can_check_in(registration)
        if not registration.course:
            raise MissingCourseError(
                f"{registration.full_name or registration.national_id} has no course assigned"
            )

        course = registration.course
        activity_id = registration.activity_id
        state, row = await counter_store.load_counter(session, activity_id, course)
        counter = await counter_store.resolve_counter(state, session, activity_id, course)

        # Pre-assigned ticket from an import
        pre_assigned = TicketLabel.parse(registration.display_queue_number)
        if pre_assigned is not None and pre_assigned.number > 0:
            label = registration.display_queue_number
            if not await _label_consumed_by_other(session, registration, label):
                # Always written so that concurrent reuses of the same label serialize
                await counter_store.write_counter(
                    session, row, activity_id, course, max(counter, pre_assigned.number)
                )
                await mark_checked_in(session, registration, queue_number=pre_assigned.number)
                logger.info(f"Reused pre-assigned ticket {label} for registration {registration.id}")
                return AllocationResult(pre_assigned.number, label, reused=True)
            logger.info(
                f"Pre-assigned ticket {label} already consumed, drawing a new one "
                f"for registration {registration.id}"
            )

        held = await counter_store.held_numbers(session, activity_id, course)
        number = counter_store.next_free_number(counter, held)
        display = format_ticket(await course_prefix(session, course), number)

        await counter_store.write_counter(session, row, activity_id, course, number)
        await mark_checked_in(
            session,
            registration,
            queue_number=number,
            display_queue_number=display,
        )
        logger.info(f"Issued ticket {display} to registration {registration.id}")
        return AllocationResult(number, display)

    async def counter_overview(self, activity_id: uuid.UUID) -> list[CounterOverview]:
        """Counter state of every course seen in the activity, with the next ticket to be issued."""
        async with self.session_maker() as session:
            await _get_queue_activity(session, activity_id)
            counters = await session.execute(
                select(QueueCounter.course).where(QueueCounter.activity_id == activity_id)
            )
            courses = set(counters.scalars().all())
            registered = await session.execute(
                select(Registration.course)
                .where(Registration.activity_id == activity_id, Registration.course.is_not(None))
                .distinct()
            )
            courses.update(registered.scalars().all())

            overview = []
            for course in sorted(courses):
                state, _ = await counter_store.load_counter(session, activity_id, course)
                counter = await counter_store.resolve_counter(state, session, activity_id, course)
                held = await counter_store.held_numbers(session, activity_id, course)
                number = counter_store.next_free_number(counter, held)
                overview.append(
                    CounterOverview(
                        course=course,
                        last_number=state.value if isinstance(state, counter_store.Known) else None,
                        recovered_number=counter,
                        next_display_queue_number=format_ticket(
                            await course_prefix(session, course), number
                        ),
                    )
                )
            return overview

    async def set_counter(self, activity_id: uuid.UUID, course: str, value: int) -> None:
        async def work(session: AsyncSession) -> None:
            await _get_queue_activity(session, activity_id)
            await counter_store.set_counter(session, activity_id, course, value)

        await run_in_transaction(self.session_maker, work, label=f"set counter {course}", settings=self.settings)

    async def reset_all_counters(self, activity_id: uuid.UUID) -> dict[str, int]:
        async def work(session: AsyncSession) -> dict[str, int]:
            await _get_queue_activity(session, activity_id)
            return await counter_store.reset_all_counters(session, activity_id)

        return await run_in_transaction(self.session_maker, work, label="reset counters", settings=self.settings)


async def _get_queue_activity(session: AsyncSession, activity_id: uuid.UUID) -> Activity:
    activity = await session.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity not found")
    if activity.type != ActivityType.QUEUE.value:
        raise ConfigurationError(f"Activity '{activity.name}' does not use queue numbers")
    return activity
