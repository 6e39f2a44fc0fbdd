"""
FastAPI dependency providers for the services.

Everything a router needs is resolved here, so tests can swap the
session factory or the notification transport with
`app.dependency_overrides`.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkin.database import get_session_maker
from checkin.services.broadcaster import ChannelBroadcaster
from checkin.services.call_dispatcher import CallDispatcher
from checkin.services.check_in import CheckInService
from checkin.services.notifier import NotificationDispatcher, build_dispatcher
from checkin.services.queue_allocator import QueueAllocator
from checkin.services.seat_assignment import SeatAssignmentService


@lru_cache
def get_broadcaster() -> ChannelBroadcaster:
    """Process-wide broadcaster shared by dispatchers and display streams."""
    return ChannelBroadcaster()


@lru_cache
def get_notifier() -> NotificationDispatcher:
    return build_dispatcher()


def get_queue_allocator(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> QueueAllocator:
    return QueueAllocator(session_maker)


def get_call_dispatcher(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    notifier: NotificationDispatcher = Depends(get_notifier),
    broadcaster: ChannelBroadcaster = Depends(get_broadcaster),
) -> CallDispatcher:
    return CallDispatcher(session_maker, notifier, broadcaster)


def get_check_in_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    allocator: QueueAllocator = Depends(get_queue_allocator),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> CheckInService:
    return CheckInService(session_maker, allocator, notifier)


def get_seat_assignment_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> SeatAssignmentService:
    return SeatAssignmentService(session_maker)
