"""
Queue call dispatcher.

Drives the service channels: pulls the next waiting ticket of the
channel's course, re-announces the current one, or calls a specific
ticket out of order. The registration and the channel are both written
with compare-and-swap guards, so two stations driving the same channel
(or the same course) never call the same ticket.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkin.config import Settings, get_settings
from checkin.exceptions import (
    ConfigurationError,
    NotFoundError,
    NothingToRecallError,
    QueueEmptyError,
    TransactionConflict,
)
from checkin.models import (
    PROCESSED_STATUSES,
    Activity,
    QueueChannel,
    Registration,
    RegistrationStatus,
)
from checkin.services.broadcaster import ChannelBroadcaster
from checkin.services.message_templates import queue_call_message
from checkin.services.notifier import NotificationDispatcher, notify, resolve_contact
from checkin.services.transactions import run_in_transaction
from checkin.utils.logger import logger
from checkin.utils.timezone import epoch_millis, utc_now


@dataclass
class CallResult:
    event: str  # call_next, recall, insert
    channel: QueueChannel
    activity: Activity
    registration: Optional[Registration]
    contact_id: Optional[str] = None
    notified: bool = False


def next_ping_id(previous: int) -> int:
    """Wall-clock milliseconds, forced strictly above the previous value."""
    return max(epoch_millis(), previous + 1)


def channel_snapshot(channel: QueueChannel) -> dict:
    return {
        "id": str(channel.id),
        "activity_id": str(channel.activity_id),
        "channel_number": channel.channel_number,
        "channel_name": channel.channel_name,
        "serving_course": channel.serving_course,
        "state": channel.state,
        "current_queue_number": channel.current_queue_number,
        "current_display_queue_number": channel.current_display_queue_number,
        "current_student_name": channel.current_student_name,
        "ping_id": channel.ping_id,
        "last_called_at": channel.last_called_at.isoformat() if channel.last_called_at else None,
    }


async def _load_channel(session: AsyncSession, channel_id: uuid.UUID) -> QueueChannel:
    result = await session.execute(
        select(QueueChannel)
        .where(QueueChannel.id == channel_id)
        .execution_options(populate_existing=True)
    )
    channel = result.scalar_one_or_none()
    if channel is None:
        raise NotFoundError("Channel not found")
    return channel


async def _load_activity(session: AsyncSession, activity_id: uuid.UUID) -> Activity:
    activity = await session.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError("Activity not found")
    return activity


async def _claim(session: AsyncSession, registration: Registration, called_at) -> None:
    """Stamp `called_at` on a waiting registration; losing the race is a conflict."""
    result = await session.execute(
        update(Registration)
        .where(Registration.id == registration.id, Registration.called_at.is_(None))
        .values(called_at=called_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TransactionConflict(f"registration {registration.id} called concurrently")
    registration.called_at = called_at


async def _announce(
    session: AsyncSession,
    channel: QueueChannel,
    registration: Optional[Registration],
    queue_number: Optional[int],
    display_queue_number: str,
    student_name: Optional[str],
) -> None:
    """Write the current call onto the channel with a fresh ping id."""
    now = utc_now()
    values = {
        "current_queue_number": queue_number,
        "current_display_queue_number": display_queue_number,
        "current_student_name": student_name,
        "current_registration_id": registration.id if registration is not None else None,
        "ping_id": next_ping_id(channel.ping_id),
        "last_called_at": now,
    }
    result = await session.execute(
        update(QueueChannel)
        .where(QueueChannel.id == channel.id, QueueChannel.ping_id == channel.ping_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TransactionConflict(f"channel {channel.id} updated concurrently")
    for key, value in values.items():
        setattr(channel, key, value)


class CallDispatcher:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        notifier: NotificationDispatcher,
        broadcaster: ChannelBroadcaster,
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.notifier = notifier
        self.broadcaster = broadcaster
        self.settings = settings

    # =========================================================================
    # Calls
    # =========================================================================

    async def call_next(self, channel_id: uuid.UUID) -> CallResult:
        """Call the lowest waiting ticket of the channel's course."""

        async def work(session: AsyncSession) -> CallResult:
            channel = await _load_channel(session, channel_id)
            if not channel.serving_course:
                raise ConfigurationError(f"{channel.channel_name} has no course assigned")

            result = await session.execute(
                select(Registration)
                .where(
                    Registration.activity_id == channel.activity_id,
                    Registration.course == channel.serving_course,
                    Registration.status == RegistrationStatus.CHECKED_IN.value,
                    Registration.called_at.is_(None),
                )
                .order_by(
                    Registration.queue_number.is_(None),
                    Registration.queue_number,
                    Registration.checked_in_at,
                    Registration.id,
                )
                .limit(1)
                .execution_options(populate_existing=True)
            )
            registration = result.scalar_one_or_none()
            if registration is None:
                raise QueueEmptyError(f"No one is waiting for {channel.serving_course}")

            await _claim(session, registration, utc_now())
            await _announce(
                session,
                channel,
                registration,
                registration.queue_number,
                registration.display_queue_number or str(registration.queue_number),
                registration.full_name,
            )
            return await self._result(session, "call_next", channel, registration)

        return await self._dispatch(work, f"call next on {channel_id}")

    async def recall(self, channel_id: uuid.UUID) -> CallResult:
        """Re-announce the channel's current ticket without moving the queue."""

        async def work(session: AsyncSession) -> CallResult:
            channel = await _load_channel(session, channel_id)
            if not channel.current_display_queue_number:
                raise NothingToRecallError(f"{channel.channel_name} has not called anyone yet")

            registration = await self._find_current(session, channel)
            if registration is None:
                logger.info(
                    f"Recalling {channel.current_display_queue_number} on {channel.channel_name}: "
                    f"registration no longer exists, display only"
                )
            await _announce(
                session,
                channel,
                registration,
                channel.current_queue_number,
                channel.current_display_queue_number,
                channel.current_student_name,
            )
            return await self._result(session, "recall", channel, registration)

        return await self._dispatch(work, f"recall on {channel_id}")

    async def insert(self, channel_id: uuid.UUID, display_queue_number: str) -> CallResult:
        """Call a specific waiting ticket, out of order."""
        label = display_queue_number.strip()

        async def work(session: AsyncSession) -> CallResult:
            channel = await _load_channel(session, channel_id)
            result = await session.execute(
                select(Registration)
                .where(
                    Registration.activity_id == channel.activity_id,
                    Registration.display_queue_number == label,
                    Registration.status == RegistrationStatus.CHECKED_IN.value,
                    Registration.called_at.is_(None),
                )
                .execution_options(populate_existing=True)
            )
            registration = result.scalars().first()
            if registration is None:
                raise NotFoundError(f"No checked-in ticket {label} is waiting")

            await _claim(session, registration, utc_now())
            await _announce(
                session,
                channel,
                registration,
                registration.queue_number,
                label,
                registration.full_name,
            )
            return await self._result(session, "insert", channel, registration)

        return await self._dispatch(work, f"insert {label} on {channel_id}")

    async def reset_called(self, activity_id: uuid.UUID) -> int:
        """Put every called, still checked-in registration back in the waiting pool."""

        async def work(session: AsyncSession) -> int:
            await _load_activity(session, activity_id)
            result = await session.execute(
                update(Registration)
                .where(
                    Registration.activity_id == activity_id,
                    Registration.status == RegistrationStatus.CHECKED_IN.value,
                    Registration.called_at.is_not(None),
                )
                .values(called_at=None)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        count = await run_in_transaction(
            self.session_maker, work, label="reset called", settings=self.settings
        )
        logger.info(f"Reset {count} called registrations in activity {activity_id}")
        return count

    async def _find_current(self, session: AsyncSession, channel: QueueChannel) -> Optional[Registration]:
        """The announced registrant: by stored id, else by label, else by number and course."""
        conditions = []
        if channel.current_registration_id is not None:
            conditions.append(Registration.id == channel.current_registration_id)
        conditions.append(Registration.display_queue_number == channel.current_display_queue_number)
        if channel.current_queue_number is not None and channel.serving_course:
            conditions.append(
                and_(
                    Registration.queue_number == channel.current_queue_number,
                    Registration.course == channel.serving_course,
                )
            )
        for condition in conditions:
            result = await session.execute(
                select(Registration).where(
                    Registration.activity_id == channel.activity_id,
                    Registration.status.in_(PROCESSED_STATUSES),
                    condition,
                )
            )
            registration = result.scalars().first()
            if registration is not None:
                return registration
        return None

    async def _result(
        self,
        session: AsyncSession,
        event: str,
        channel: QueueChannel,
        registration: Optional[Registration],
    ) -> CallResult:
        activity = await _load_activity(session, channel.activity_id)
        contact_id = await resolve_contact(session, registration) if registration is not None else None
        return CallResult(event, channel, activity, registration, contact_id)

    async def _dispatch(self, work, label: str) -> CallResult:
        result = await run_in_transaction(self.session_maker, work, label=label, settings=self.settings)
        channel = result.channel
        logger.info(
            f"{result.event}: {channel.channel_name} -> {channel.current_display_queue_number} "
            f"(ping {channel.ping_id})"
        )

        # After commit: notification and display push never undo the call
        settings = self.settings or get_settings()
        if settings.notify_on_queue_call and result.registration is not None:
            message = queue_call_message(
                result.activity.name,
                channel.channel_name,
                channel.current_display_queue_number,
                result.registration.course,
                result.activity.id,
                require_evaluation=result.activity.enable_evaluation,
                liff_url=settings.liff_url,
            )
            result.notified = await notify(self.notifier, result.contact_id, message)
        await self.broadcaster.broadcast(
            channel.activity_id,
            {"event": result.event, "channel": channel_snapshot(channel)},
        )
        return result

    # =========================================================================
    # Channel administration
    # =========================================================================

    async def create_channel(
        self,
        activity_id: uuid.UUID,
        channel_name: Optional[str] = None,
        serving_course: Optional[str] = None,
    ) -> QueueChannel:
        async def work(session: AsyncSession) -> QueueChannel:
            await _load_activity(session, activity_id)
            result = await session.execute(
                select(func.max(QueueChannel.channel_number)).where(
                    QueueChannel.activity_id == activity_id
                )
            )
            number = (result.scalar_one_or_none() or 0) + 1
            channel = QueueChannel(
                id=uuid.uuid4(),
                activity_id=activity_id,
                channel_number=number,
                channel_name=channel_name or f"Channel {number}",
                serving_course=serving_course,
                ping_id=0,
            )
            session.add(channel)
            await session.flush()
            return channel

        return await run_in_transaction(self.session_maker, work, label="create channel", settings=self.settings)

    async def update_channel(self, channel_id: uuid.UUID, **changes) -> QueueChannel:
        """Rename a channel or change its serving course (None makes it idle)."""
        allowed = {"channel_name", "serving_course"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update channel fields: {sorted(unknown)}")

        async def work(session: AsyncSession) -> QueueChannel:
            channel = await _load_channel(session, channel_id)
            for key, value in changes.items():
                setattr(channel, key, value)
            await session.flush()
            return channel

        channel = await run_in_transaction(self.session_maker, work, label="update channel", settings=self.settings)
        await self.broadcaster.broadcast(
            channel.activity_id, {"event": "channel_updated", "channel": channel_snapshot(channel)}
        )
        return channel

    async def delete_channel(self, channel_id: uuid.UUID) -> None:
        async def work(session: AsyncSession) -> uuid.UUID:
            channel = await _load_channel(session, channel_id)
            await session.delete(channel)
            return channel.activity_id

        activity_id = await run_in_transaction(
            self.session_maker, work, label="delete channel", settings=self.settings
        )
        await self.broadcaster.broadcast(
            activity_id, {"event": "channel_deleted", "channel": {"id": str(channel_id)}}
        )

    # =========================================================================
    # Display
    # =========================================================================

    async def list_channels(self, activity_id: uuid.UUID) -> list[QueueChannel]:
        async with self.session_maker() as session:
            await _load_activity(session, activity_id)
            result = await session.execute(
                select(QueueChannel)
                .where(QueueChannel.activity_id == activity_id)
                .order_by(QueueChannel.channel_number)
            )
            return list(result.scalars().all())

    async def display_snapshot(self, activity_id: uuid.UUID) -> dict:
        """Channels plus number of waiting tickets per course."""
        async with self.session_maker() as session:
            activity = await _load_activity(session, activity_id)
            channels = await session.execute(
                select(QueueChannel)
                .where(QueueChannel.activity_id == activity_id)
                .order_by(QueueChannel.channel_number)
            )
            waiting = await session.execute(
                select(Registration.course, func.count())
                .where(
                    Registration.activity_id == activity_id,
                    Registration.status == RegistrationStatus.CHECKED_IN.value,
                    Registration.called_at.is_(None),
                )
                .group_by(Registration.course)
            )
            return {
                "activity_id": str(activity.id),
                "activity_name": activity.name,
                "channels": [channel_snapshot(channel) for channel in channels.scalars().all()],
                "waiting": {course or "": count for course, count in waiting.all()},
            }

