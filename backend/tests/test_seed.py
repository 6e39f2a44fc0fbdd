from sqlalchemy import func, select

from checkin.models import Activity, Course, QueueChannel
from scripts.seed_data import ACTIVITIES, COURSES, seed


async def count(session_maker, model) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def test_seed_is_idempotent(session_maker, capsys):
    await seed(session_maker)
    await seed(session_maker)

    assert await count(session_maker, Course) == len(COURSES)
    assert await count(session_maker, Activity) == len(ACTIVITIES)
    assert await count(session_maker, QueueChannel) == sum(a["channels"] for a in ACTIVITIES)
    assert "exists" in capsys.readouterr().out
