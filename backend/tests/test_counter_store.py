import pytest

from checkin.exceptions import TransactionConflict
from checkin.services import counter_store
from checkin.services.counter_store import Known, Unknown, first_gap_counter, next_free_number, plan_counter_repair


class TestGapRepair:
    @pytest.mark.parametrize(
        "numbers, expected",
        [
            ({1, 2, 4, 5}, 2),
            ({1, 2, 3}, 3),
            (set(), 0),
            ({2, 3}, 0),
            ({1, 1, 2, 7}, 2),
            ({0, -3, 1}, 1),
        ],
    )
    def test_first_gap_counter(self, numbers, expected):
        assert first_gap_counter(numbers) == expected

    def test_plan_per_course(self):
        plan = plan_counter_repair(
            [
                ("ANE", None, "ANE-001"),
                ("ANE", 2, "ANE-002"),
                ("ANE", None, "ANE-004"),
                ("MED", 1, None),
                ("PED", None, None),
                (None, 9, "X-009"),
            ]
        )
        assert plan == {"ANE": 2, "MED": 1, "PED": 0}

    def test_next_free_number_skips_held(self):
        assert next_free_number(2, {4, 5}) == 3
        assert next_free_number(3, {4, 5}) == 6
        assert next_free_number(0, []) == 1


class TestCounterRows:
    async def test_unknown_until_written(self, session_maker, make_activity):
        activity = await make_activity()
        async with session_maker() as session:
            state, row = await counter_store.load_counter(session, activity.id, "Anesthesiology")
            assert state == Unknown()
            assert row is None

            await counter_store.write_counter(session, None, activity.id, "Anesthesiology", 0)
            await session.commit()

        async with session_maker() as session:
            state, row = await counter_store.load_counter(session, activity.id, "Anesthesiology")
            assert state == Known(0)
            assert row.version == 1

    async def test_stale_write_conflicts(self, session_maker, make_activity):
        activity = await make_activity()
        async with session_maker() as session:
            await counter_store.write_counter(session, None, activity.id, "ANE", 4)
            await session.commit()

        async with session_maker() as session:
            _, stale = await counter_store.load_counter(session, activity.id, "ANE")

        async with session_maker() as session:
            _, fresh = await counter_store.load_counter(session, activity.id, "ANE")
            await counter_store.write_counter(session, fresh, activity.id, "ANE", 5)
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(TransactionConflict):
                await counter_store.write_counter(session, stale, activity.id, "ANE", 5)

    async def test_concurrent_create_conflicts(self, session_maker, make_activity):
        activity = await make_activity()
        async with session_maker() as session:
            await counter_store.write_counter(session, None, activity.id, "ANE", 1)
            await session.commit()

        async with session_maker() as session:
            with pytest.raises(TransactionConflict):
                await counter_store.write_counter(session, None, activity.id, "ANE", 1)

    async def test_recover_counter_uses_both_fields(self, session_maker, make_activity, make_registration):
        activity = await make_activity()
        await make_registration(activity, display_queue_number="ANE-007")
        await make_registration(activity, queue_number=9)
        await make_registration(activity, course="Pediatrics", display_queue_number="PED-050")

        async with session_maker() as session:
            assert await counter_store.recover_counter(session, activity.id, "Anesthesiology") == 9
            assert await counter_store.recover_counter(session, activity.id, "Emergency Medicine") == 0

    async def test_set_counter_rejects_negative(self, session_maker, make_activity):
        activity = await make_activity()
        async with session_maker() as session:
            with pytest.raises(ValueError):
                await counter_store.set_counter(session, activity.id, "ANE", -1)
