"""
Seat assignment batch job.

Sorts the roster, runs the layout algorithm and writes every seat label
in one transaction. A run bumps the activity's `seating_revision` with a
compare-and-swap first, so a second run started before the first one
commits is rejected instead of interleaving its writes.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkin.exceptions import NotFoundError, SeatAssignmentInProgressError
from checkin.models import Activity, ActivityType, Course, Registration, RegistrationStatus
from checkin.services import seat_layout
from checkin.services.labels import SeatLabel
from checkin.services.transactions import is_retryable_db_error
from checkin.utils.logger import logger


@dataclass
class SeatAssignmentResult:
    activity_id: uuid.UUID
    seating_revision: int
    assignments: list[tuple[uuid.UUID, str]] = field(default_factory=list)
    unassigned: list[uuid.UUID] = field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return len(self.assignments)


class SeatAssignmentService:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def assign_seats(
        self,
        activity_id: uuid.UUID,
        sort_key: str = "import_order",
        descending: bool = False,
    ) -> SeatAssignmentResult:
        """
        Reassign every non-cancelled registrant of the activity.

        Existing seat labels are always overwritten; registrants that do
        not fit lose any seat they had.
        """
        async with self.session_maker() as session:
            try:
                result = await self._assign(session, activity_id, sort_key, descending)
                await session.commit()
            except DBAPIError as exc:
                if is_retryable_db_error(exc):
                    raise SeatAssignmentInProgressError(
                        "Seat assignment is already running for this activity"
                    ) from exc
                raise

        logger.info(
            f"Seats assigned for activity {activity_id}: {result.assigned_count} seated, "
            f"{len(result.unassigned)} without seat (revision {result.seating_revision})"
        )
        return result

    async def _assign(
        self,
        session: AsyncSession,
        activity_id: uuid.UUID,
        sort_key: str,
        descending: bool,
    ) -> SeatAssignmentResult:
        activity = await _get_activity(session, activity_id)
        # Fails for queue activities before anything is written
        seat_layout.seats_for(activity.activity_type)

        revision = activity.seating_revision
        bumped = await session.execute(
            update(Activity)
            .where(Activity.id == activity_id, Activity.seating_revision == revision)
            .values(seating_revision=revision + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            raise SeatAssignmentInProgressError("Seat assignment is already running for this activity")

        registrants = await session.execute(
            select(Registration).where(
                Registration.activity_id == activity_id,
                Registration.status != RegistrationStatus.CANCELLED.value,
            )
        )
        ordered = seat_layout.sort_registrants(registrants.scalars().all(), sort_key, descending)
        plan = seat_layout.auto_assign(activity.type, ordered)

        if plan.assignments:
            await session.execute(
                update(Registration),
                [{"id": registration_id, "seat_number": seat} for registration_id, seat in plan.assignments],
            )
        # Unseated and cancelled registrants must not keep a label someone else now holds
        seated = [registration_id for registration_id, _ in plan.assignments]
        stale = update(Registration).where(
            Registration.activity_id == activity_id,
            Registration.seat_number.is_not(None),
        )
        if seated:
            stale = stale.where(Registration.id.not_in(seated))
        await session.execute(stale.values(seat_number=None).execution_options(synchronize_session=False))

        return SeatAssignmentResult(activity_id, revision + 1, plan.assignments, plan.unassigned)

    async def seating_chart(self, activity_id: uuid.UUID) -> dict:
        """Occupancy chart of the activity's layout plus per-zone and per-course statistics."""
        async with self.session_maker() as session:
            activity = await _get_activity(session, activity_id)
            seat_layout.seats_for(activity.activity_type)

            result = await session.execute(
                select(Registration.seat_number, Registration.course).where(
                    Registration.activity_id == activity_id,
                    Registration.status != RegistrationStatus.CANCELLED.value,
                    Registration.seat_number.is_not(None),
                )
            )
            courses_by_seat: dict[str, Optional[str]] = {}
            for seat, course in result.all():
                label = SeatLabel.parse(seat)
                courses_by_seat[label.format() if label else seat] = course

            courses = await session.execute(select(Course).order_by(Course.priority, Course.name))

            if activity.activity_type == ActivityType.EXAM:
                layout = {"zones": seat_layout.exam_chart(courses_by_seat)}
            else:
                layout = {"rows": seat_layout.theater_chart(courses_by_seat)}

            return {
                "activity_id": str(activity.id),
                "activity_type": activity.type,
                "seating_revision": activity.seating_revision,
                "occupied": len(courses_by_seat),
                "by_zone": seat_layout.zone_counts(courses_by_seat),
                "legend": [
                    {"course": course.name, "short_name": course.short_name, "color": course.color}
                    for course in courses.scalars().all()
                ],
                **layout,
            }


async def _get_activity(session: AsyncSession, activity_id: uuid.UUID) -> Activity:
    activity = await session.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity not found")
    return activity
