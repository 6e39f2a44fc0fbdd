"""
Check-in and check-out of registrants.

Queue activities hand out a ticket through the `QueueAllocator`; the
other activity types record the seat the registrant sits in. Both write
an audit row and, after the commit, notify the registrant.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkin.config import Settings, get_settings
from checkin.exceptions import (
    AlreadyProcessedError,
    ConfigurationError,
    NotFoundError,
    SeatRequiredError,
    TransactionConflict,
)
from checkin.models import (
    Activity,
    ActivityType,
    CheckInLog,
    Registration,
    RegistrationStatus,
)
from checkin.services.labels import SeatLabel
from checkin.services.message_templates import (
    activity_complete_message,
    queue_ticket_message,
    seat_check_in_message,
)
from checkin.services.notifier import NotificationDispatcher, notify, resolve_contact
from checkin.services.queue_allocator import (
    AllocationResult,
    QueueAllocator,
    ensure_can_check_in,
    get_registration,
    mark_checked_in,
)
from checkin.services.transactions import run_in_transaction
from checkin.utils.logger import logger
from checkin.utils.timezone import format_local_time, utc_now


@dataclass
class CheckInResult:
    activity: Activity
    registration: Registration
    allocation: Optional[AllocationResult] = None
    contact_id: Optional[str] = None
    notified: bool = False


async def find_registration(
    session: AsyncSession,
    activity_id: uuid.UUID,
    registration_id: Optional[uuid.UUID] = None,
    national_id: Optional[str] = None,
) -> Registration:
    """Look a registrant up by QR payload (registration id) or by national id."""
    if registration_id is not None:
        return await get_registration(session, activity_id, registration_id)
    if not national_id:
        raise ValueError("Either registration_id or national_id is required")

    result = await session.execute(
        select(Registration)
        .where(
            Registration.activity_id == activity_id,
            Registration.national_id == national_id.strip(),
            Registration.status != RegistrationStatus.CANCELLED.value,
        )
        .execution_options(populate_existing=True)
    )
    registration = result.scalars().first()
    if registration is None:
        raise NotFoundError(f"No registration for national id {national_id} in this activity")
    return registration


def _normalize_seat(seat_number: Optional[str]) -> Optional[str]:
    if not seat_number or not seat_number.strip():
        return None
    label = SeatLabel.parse(seat_number)
    return label.format() if label else seat_number.strip()


class CheckInService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        allocator: QueueAllocator,
        notifier: NotificationDispatcher,
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.allocator = allocator
        self.notifier = notifier
        self.settings = settings

    def _settings(self) -> Settings:
        return self.settings or get_settings()

    async def lookup(
        self,
        activity_id: uuid.UUID,
        registration_id: Optional[uuid.UUID] = None,
        national_id: Optional[str] = None,
    ) -> Registration:
        async with self.session_maker() as session:
            return await find_registration(session, activity_id, registration_id, national_id)

    async def check_in(
        self,
        activity_id: uuid.UUID,
        registration_id: Optional[uuid.UUID] = None,
        national_id: Optional[str] = None,
        seat_number: Optional[str] = None,
    ) -> CheckInResult:
        """
        Check a registrant in.

        Raises:
            AlreadyProcessedError: registrant already checked in or finished
            MissingCourseError: queue activity, registrant without course
            SeatRequiredError: seated activity and no seat given or on file
        """

        async def work(session: AsyncSession) -> CheckInResult:
            activity = await _get_activity(session, activity_id)
            registration = await find_registration(session, activity_id, registration_id, national_id)
            ensure_can_check_in(registration)

            allocation = None
            if activity.type == ActivityType.QUEUE.value:
                allocation = await self.allocator.allocate_within(session, registration)
                assigned = f"Q {allocation.display_queue_number}"
            else:
                seat = _normalize_seat(seat_number) or registration.seat_number
                if not seat:
                    raise SeatRequiredError(
                        f"A seat number is required to check in {registration.full_name or registration.national_id}"
                    )
                await mark_checked_in(session, registration, seat_number=seat)
                assigned = seat

            session.add(_log_entry(activity, registration, RegistrationStatus.CHECKED_IN.value, assigned))
            contact_id = await resolve_contact(session, registration)
            return CheckInResult(activity, registration, allocation, contact_id)

        result = await run_in_transaction(
            self.session_maker, work, label="check-in", settings=self.settings
        )
        logger.info(
            f"Checked in {result.registration.national_id} to {result.activity.name}: "
            f"{result.allocation.display_queue_number if result.allocation else result.registration.seat_number}"
        )

        if self._settings().notify_on_check_in:
            result.notified = await notify(self.notifier, result.contact_id, self._check_in_message(result))
        return result

    async def check_out(
        self,
        activity_id: uuid.UUID,
        registration_id: Optional[uuid.UUID] = None,
        national_id: Optional[str] = None,
    ) -> CheckInResult:
        """Mark a registrant as completed and ask for an evaluation if the activity has one."""

        async def work(session: AsyncSession) -> CheckInResult:
            activity = await _get_activity(session, activity_id)
            registration = await find_registration(session, activity_id, registration_id, national_id)
            if registration.status == RegistrationStatus.COMPLETED.value:
                raise AlreadyProcessedError(
                    f"{registration.full_name or registration.national_id} has already completed the activity",
                    status=registration.status,
                    display_queue_number=registration.display_queue_number,
                    seat_number=registration.seat_number,
                )
            if registration.status == RegistrationStatus.CANCELLED.value:
                raise ConfigurationError("Registration is cancelled")

            completed_at = utc_now()
            changed = await session.execute(
                update(Registration)
                .where(Registration.id == registration.id, Registration.status == registration.status)
                .values(status=RegistrationStatus.COMPLETED.value, completed_at=completed_at)
                .execution_options(synchronize_session=False)
            )
            if changed.rowcount != 1:
                raise TransactionConflict(f"registration {registration.id} changed concurrently")
            registration.status = RegistrationStatus.COMPLETED.value
            registration.completed_at = completed_at

            session.add(_log_entry(activity, registration, RegistrationStatus.COMPLETED.value, None))
            contact_id = await resolve_contact(session, registration)
            return CheckInResult(activity, registration, None, contact_id)

        result = await run_in_transaction(
            self.session_maker, work, label="check-out", settings=self.settings
        )
        logger.info(f"Checked out {result.registration.national_id} from {result.activity.name}")

        settings = self._settings()
        if settings.notify_on_check_out and result.activity.enable_evaluation:
            message = activity_complete_message(
                result.activity.name,
                result.activity.id,
                require_evaluation=True,
                liff_url=settings.liff_url,
            )
            result.notified = await notify(self.notifier, result.contact_id, message)
        return result

    def _check_in_message(self, result: CheckInResult) -> dict:
        registration = result.registration
        checked_in_at = (
            format_local_time(registration.checked_in_at, self._settings().local_timezone)
            if registration.checked_in_at
            else None
        )
        if result.allocation is not None:
            return queue_ticket_message(
                result.activity.name,
                registration.full_name,
                registration.course,
                registration.time_slot,
                result.allocation.display_queue_number,
                checked_in_at,
            )
        return seat_check_in_message(
            result.activity.name,
            registration.full_name,
            registration.course,
            registration.student_id,
            registration.seat_number,
            checked_in_at,
        )


async def _get_activity(session: AsyncSession, activity_id: uuid.UUID) -> Activity:
    activity = await session.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity not found")
    return activity


def _log_entry(
    activity: Activity,
    registration: Registration,
    status: str,
    assigned_seat: Optional[str],
) -> CheckInLog:
    return CheckInLog(
        activity_id=activity.id,
        activity_name=activity.name,
        registration_id=registration.id,
        student_name=registration.full_name,
        national_id=registration.national_id,
        status=status,
        assigned_seat=assigned_seat,
    )
