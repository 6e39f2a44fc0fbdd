"""
Seed the database with course options and demo activities.

Run with: python -m scripts.seed_data
"""

import asyncio
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from checkin.database import async_session_maker, init_db
from checkin.models import Activity, ActivityType, Course, QueueChannel

COURSES = [
    {"name": "Anesthesiology", "short_name": "ANE", "color": "#F59E0B", "priority": 1},
    {"name": "Emergency Medicine", "short_name": "EM", "color": "#EF4444", "priority": 2},
    {"name": "Internal Medicine", "short_name": "MED", "color": "#3B82F6", "priority": 3},
    {"name": "Pediatrics", "short_name": "PED", "color": "#10B981", "priority": 4},
]

ACTIVITIES = [
    {
        "name": "Residency Interview Day",
        "type": ActivityType.QUEUE,
        "capacity": 400,
        "enable_evaluation": True,
        "channels": 3,
    },
    {
        "name": "Graduation Rehearsal",
        "type": ActivityType.GRADUATION,
        "capacity": 348,
        "enable_evaluation": False,
        "channels": 0,
    },
]


async def seed(session_maker: async_sessionmaker[AsyncSession] = async_session_maker) -> None:
    """Create missing courses and demo activities; existing rows are left alone."""
    async with session_maker() as session:
        print("Courses:")
        for course_data in COURSES:
            result = await session.execute(select(Course).where(Course.name == course_data["name"]))
            if result.scalar_one_or_none():
                print(f"  ✓ {course_data['name']} exists")
                continue
            session.add(Course(id=uuid.uuid4(), **course_data))
            print(f"  + Created: {course_data['name']} ({course_data['short_name']})")

        print("\nActivities:")
        for activity_data in ACTIVITIES:
            result = await session.execute(select(Activity).where(Activity.name == activity_data["name"]))
            if result.scalar_one_or_none():
                print(f"  ✓ {activity_data['name']} exists")
                continue

            activity = Activity(
                id=uuid.uuid4(),
                name=activity_data["name"],
                type=activity_data["type"].value,
                capacity=activity_data["capacity"],
                enable_evaluation=activity_data["enable_evaluation"],
            )
            session.add(activity)
            await session.flush()
            for number in range(1, activity_data["channels"] + 1):
                session.add(
                    QueueChannel(
                        id=uuid.uuid4(),
                        activity_id=activity.id,
                        channel_number=number,
                        channel_name=f"Channel {number}",
                        ping_id=0,
                    )
                )
            print(f"  + Created: {activity.name} ({activity.type}, {activity_data['channels']} channels)")

        await session.commit()
        print("\n✓ Seed data complete!")


async def main() -> None:
    await init_db()
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
