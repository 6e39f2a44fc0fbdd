import os

# Must be set before checkin.database builds its module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import uuid  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import select  # noqa: E402

from checkin.config import Settings  # noqa: E402
from checkin.database import build_engine, build_session_maker, init_db  # noqa: E402
from checkin.models import (  # noqa: E402
    Activity,
    ActivityType,
    Course,
    QueueChannel,
    QueueCounter,
    Registration,
    RegistrationStatus,
    StudentProfile,
)
from checkin.services.broadcaster import ChannelBroadcaster  # noqa: E402
from checkin.services.notifier import NotificationDispatcher  # noqa: E402


class RecordingNotifier(NotificationDispatcher):
    """Keeps every message instead of sending it."""

    def __init__(self, succeed: bool = True, error: Exception | None = None):
        self.succeed = succeed
        self.error = error
        self.sent: list[tuple[str, dict]] = []

    async def send(self, contact_id: str, message: dict) -> bool:
        if self.error is not None:
            raise self.error
        self.sent.append((contact_id, message))
        return self.succeed


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="test",
        transaction_max_attempts=50,
        transaction_backoff_initial_seconds=0.001,
        transaction_backoff_max_seconds=0.02,
        line_channel_access_token=None,
        liff_id="1234-abcd",
    )


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'checkin.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(error=RuntimeError("LINE is down"))


@pytest.fixture
def broadcaster() -> ChannelBroadcaster:
    return ChannelBroadcaster()


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_course(session_maker):
    async def _make(name: str = "Anesthesiology", short_name: str = "ANE", **kwargs) -> Course:
        async with session_maker() as session:
            course = Course(id=uuid.uuid4(), name=name, short_name=short_name, **kwargs)
            session.add(course)
            await session.commit()
            return course

    return _make


@pytest.fixture
def make_activity(session_maker):
    async def _make(type: ActivityType = ActivityType.QUEUE, name: str = "Interview Day", **kwargs) -> Activity:
        async with session_maker() as session:
            activity = Activity(id=uuid.uuid4(), name=name, type=type.value, **kwargs)
            session.add(activity)
            await session.commit()
            return activity

    return _make


@pytest.fixture
def make_registration(session_maker):
    counter = {"n": 0}

    async def _make(activity: Activity, **kwargs) -> Registration:
        counter["n"] += 1
        n = counter["n"]
        status = kwargs.pop("status", RegistrationStatus.REGISTERED)
        kwargs.setdefault("national_id", f"{1100000000000 + n}")
        kwargs.setdefault("full_name", f"Registrant {n:03d}")
        kwargs.setdefault("course", "Anesthesiology")
        async with session_maker() as session:
            registration = Registration(
                id=uuid.uuid4(),
                activity_id=activity.id,
                status=status.value if isinstance(status, RegistrationStatus) else status,
                **kwargs,
            )
            session.add(registration)
            await session.commit()
            return registration

    return _make


@pytest.fixture
def make_channel(session_maker):
    async def _make(activity: Activity, number: int = 1, serving_course: str | None = "Anesthesiology") -> QueueChannel:
        async with session_maker() as session:
            channel = QueueChannel(
                id=uuid.uuid4(),
                activity_id=activity.id,
                channel_number=number,
                channel_name=f"Channel {number}",
                serving_course=serving_course,
                ping_id=0,
            )
            session.add(channel)
            await session.commit()
            return channel

    return _make


@pytest.fixture
def make_profile(session_maker):
    async def _make(national_id: str, line_user_id: str) -> StudentProfile:
        async with session_maker() as session:
            profile = StudentProfile(id=uuid.uuid4(), national_id=national_id, line_user_id=line_user_id)
            session.add(profile)
            await session.commit()
            return profile

    return _make


@pytest.fixture
def fetch(session_maker):
    """Reload a row by primary key in a fresh session."""

    async def _fetch(model, id_):
        async with session_maker() as session:
            return await session.get(model, id_)

    return _fetch


@pytest.fixture
def counter_value(session_maker):
    async def _value(activity: Activity, course: str = "Anesthesiology") -> int | None:
        async with session_maker() as session:
            result = await session.execute(
                select(QueueCounter.last_number).where(
                    QueueCounter.activity_id == activity.id,
                    QueueCounter.course == course,
                )
            )
            return result.scalar_one_or_none()

    return _value
