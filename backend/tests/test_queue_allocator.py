import asyncio
import uuid

import pytest

from checkin.exceptions import (
    AlreadyProcessedError,
    ConfigurationError,
    ContentionError,
    MissingCourseError,
    NotFoundError,
    TransactionConflict,
)
from checkin.models import Activity, Registration, RegistrationStatus
from checkin.services import counter_store
from checkin.services.queue_allocator import QueueAllocator


@pytest.fixture
def allocator(session_maker, settings):
    return QueueAllocator(session_maker, settings)


@pytest.fixture
async def activity(make_activity, make_course):
    await make_course("Anesthesiology", "ANE")
    return await make_activity()


async def test_first_ticket_without_any_data(allocator, activity, make_registration, fetch, counter_value):
    registration = await make_registration(activity)

    result = await allocator.allocate(activity.id, registration.id)

    assert result.queue_number == 1
    assert result.display_queue_number == "ANE-001"
    assert not result.reused
    stored = await fetch(Registration, registration.id)
    assert stored.status == RegistrationStatus.CHECKED_IN.value
    assert stored.queue_number == 1
    assert stored.display_queue_number == "ANE-001"
    assert stored.checked_in_at is not None
    assert await counter_value(activity) == 1


async def test_counter_zero_means_next_is_one(allocator, activity, make_registration, session_maker):
    await make_registration(activity, queue_number=5, display_queue_number="ANE-005")
    await allocator.set_counter(activity.id, "Anesthesiology", 0)
    registration = await make_registration(activity)

    result = await allocator.allocate(activity.id, registration.id)

    assert result.queue_number == 1


async def test_recovery_scan_when_counter_missing(allocator, activity, make_registration, counter_value):
    await make_registration(activity, display_queue_number="ANE-007")
    await make_registration(activity, display_queue_number="ANE-003")
    registration = await make_registration(activity)
    assert await counter_value(activity) is None

    result = await allocator.allocate(activity.id, registration.id)

    assert result.queue_number == 8
    assert result.display_queue_number == "ANE-008"
    assert await counter_value(activity) == 8


async def test_pre_assigned_ticket_is_reused(allocator, activity, make_registration, fetch, counter_value):
    registration = await make_registration(activity, display_queue_number="ANE-010")

    result = await allocator.allocate(activity.id, registration.id)

    assert result.reused
    assert result.queue_number == 10
    assert result.display_queue_number == "ANE-010"
    stored = await fetch(Registration, registration.id)
    assert stored.queue_number == 10
    assert await counter_value(activity) == 10


async def test_reuse_does_not_lower_counter(allocator, activity, make_registration, counter_value):
    await allocator.set_counter(activity.id, "Anesthesiology", 20)
    registration = await make_registration(activity, display_queue_number="ANE-010")

    result = await allocator.allocate(activity.id, registration.id)

    assert result.reused
    assert await counter_value(activity) == 20


async def test_consumed_pre_assigned_ticket_draws_new_number(allocator, activity, make_registration, fetch):
    await make_registration(
        activity,
        status=RegistrationStatus.CHECKED_IN,
        queue_number=10,
        display_queue_number="ANE-010",
    )
    await make_registration(activity, status=RegistrationStatus.COMPLETED, display_queue_number="ANE-004")
    registration = await make_registration(activity, display_queue_number="ANE-010")

    result = await allocator.allocate(activity.id, registration.id)

    assert not result.reused
    assert result.queue_number == 11
    assert result.display_queue_number == "ANE-011"
    stored = await fetch(Registration, registration.id)
    assert stored.display_queue_number == "ANE-011"


async def test_double_check_in_is_rejected_without_advancing(allocator, activity, make_registration, counter_value):
    registration = await make_registration(activity)
    first = await allocator.allocate(activity.id, registration.id)

    for _ in range(2):
        with pytest.raises(AlreadyProcessedError) as exc_info:
            await allocator.allocate(activity.id, registration.id)
        assert exc_info.value.display_queue_number == first.display_queue_number

    assert await counter_value(activity) == first.queue_number


@pytest.mark.parametrize("status", [RegistrationStatus.COMPLETED, RegistrationStatus.INTERVIEWING])
async def test_processed_statuses_are_rejected(allocator, activity, make_registration, status):
    registration = await make_registration(activity, status=status)
    with pytest.raises(AlreadyProcessedError):
        await allocator.allocate(activity.id, registration.id)


async def test_missing_course(allocator, activity, make_registration, counter_value):
    registration = await make_registration(activity, course=None)
    with pytest.raises(MissingCourseError):
        await allocator.allocate(activity.id, registration.id)


async def test_cancelled_registration_gets_no_ticket(allocator, activity, make_registration, fetch, counter_value):
    registration = await make_registration(activity, status=RegistrationStatus.CANCELLED)

    with pytest.raises(ConfigurationError):
        await allocator.allocate(activity.id, registration.id)

    assert (await fetch(Registration, registration.id)).status == RegistrationStatus.CANCELLED.value
    assert await counter_value(activity) is None


async def test_cancelled_registration_of_re_registered_person(allocator, activity, make_registration, fetch):
    cancelled = await make_registration(
        activity, national_id="3100700000002", status=RegistrationStatus.CANCELLED
    )
    live = await make_registration(activity, national_id="3100700000002")

    with pytest.raises(ConfigurationError):
        await allocator.allocate(activity.id, cancelled.id)

    assert (await allocator.allocate(activity.id, live.id)).display_queue_number == "ANE-001"
    assert (await fetch(Registration, cancelled.id)).queue_number is None


async def test_unknown_or_foreign_registration(allocator, activity, make_activity, make_registration):
    other_activity = await make_activity(name="Other")
    foreign = await make_registration(other_activity)

    with pytest.raises(NotFoundError):
        await allocator.allocate(activity.id, uuid.uuid4())
    with pytest.raises(NotFoundError):
        await allocator.allocate(activity.id, foreign.id)


async def test_course_without_short_name_uses_course_name(allocator, activity, make_registration):
    registration = await make_registration(activity, course="Walk-in")
    result = await allocator.allocate(activity.id, registration.id)
    assert result.display_queue_number == "Walk-in-001"


async def test_courses_have_independent_sequences(allocator, activity, make_course, make_registration):
    await make_course("Pediatrics", "PED")
    ane = await make_registration(activity)
    ped = await make_registration(activity, course="Pediatrics")

    assert (await allocator.allocate(activity.id, ane.id)).display_queue_number == "ANE-001"
    assert (await allocator.allocate(activity.id, ped.id)).display_queue_number == "PED-001"


async def test_gap_reset_reissues_missing_number(allocator, activity, make_registration, counter_value):
    for number in (1, 2, 4, 5):
        await make_registration(
            activity,
            status=RegistrationStatus.CHECKED_IN,
            queue_number=number,
            display_queue_number=f"ANE-{number:03d}",
        )
    await allocator.set_counter(activity.id, "Anesthesiology", 5)

    plan = await allocator.reset_all_counters(activity.id)

    assert plan == {"Anesthesiology": 2}
    assert await counter_value(activity) == 2
    first = await make_registration(activity)
    second = await make_registration(activity)
    assert (await allocator.allocate(activity.id, first.id)).queue_number == 3
    assert (await allocator.allocate(activity.id, second.id)).queue_number == 6


async def test_reset_drops_counters_of_courses_without_registrations(allocator, activity, counter_value):
    await allocator.set_counter(activity.id, "Pediatrics", 12)

    assert await allocator.reset_all_counters(activity.id) == {}
    assert await counter_value(activity, "Pediatrics") is None


async def test_counter_overview(allocator, activity, make_registration, fetch):
    await make_registration(activity, display_queue_number="ANE-004")
    await allocator.set_counter(activity.id, "Pediatrics", 2)

    overview = {item.course: item for item in await allocator.counter_overview(activity.id)}

    assert overview["Anesthesiology"].last_number is None
    assert overview["Anesthesiology"].recovered_number == 4
    assert overview["Anesthesiology"].next_display_queue_number == "ANE-005"
    assert overview["Pediatrics"].last_number == 2
    assert overview["Pediatrics"].next_display_queue_number == "Pediatrics-003"
    assert (await fetch(Activity, activity.id)).queue_counters == {"Pediatrics": 2}


async def test_concurrent_allocations_are_unique_and_gap_free(allocator, activity, make_registration, counter_value):
    await allocator.set_counter(activity.id, "Anesthesiology", 3)
    registrations = [await make_registration(activity) for _ in range(8)]

    results = await asyncio.gather(
        *(allocator.allocate(activity.id, registration.id) for registration in registrations)
    )

    numbers = sorted(result.queue_number for result in results)
    assert numbers == list(range(4, 12))
    assert len({result.display_queue_number for result in results}) == 8
    assert await counter_value(activity) == 11


async def test_concurrent_first_allocations_without_counter(allocator, activity, make_registration):
    await make_registration(activity, display_queue_number="ANE-002")
    registrations = [await make_registration(activity) for _ in range(5)]

    results = await asyncio.gather(
        *(allocator.allocate(activity.id, registration.id) for registration in registrations)
    )

    assert sorted(result.queue_number for result in results) == [3, 4, 5, 6, 7]


async def test_contention_after_retry_budget(session_maker, settings, activity, make_registration, counter_value, monkeypatch):
    settings.transaction_max_attempts = 3
    allocator = QueueAllocator(session_maker, settings)
    registration = await make_registration(activity)
    attempts = []

    async def always_conflict(*args, **kwargs):
        attempts.append(1)
        raise TransactionConflict("lost the race")

    monkeypatch.setattr(counter_store, "write_counter", always_conflict)

    with pytest.raises(ContentionError):
        await allocator.allocate(activity.id, registration.id)
    assert len(attempts) == 3
    assert await counter_value(activity) is None
