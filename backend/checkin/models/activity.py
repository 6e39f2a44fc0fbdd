"""Activity model - an event that registrants check in to."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from checkin.database import Base


class ActivityType(str, Enum):
    """How registrants are processed at the door."""
    EVENT = "event"            # Seat label entered at check-in, theater layout
    EXAM = "exam"              # Exam-zone seating
    GRADUATION = "graduation"  # Theater layout with reserved seats
    QUEUE = "queue"            # Queue tickets per course, called at channels


class Activity(Base):
    """
    A single activity (event, exam, graduation ceremony or queue service).

    Queue activities keep one counter row per course in `queue_counters`;
    a course with no row has never issued a ticket through the allocator
    and its counter is recovered from registration data on first use.
    """

    __tablename__ = "activities"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=ActivityType.EVENT.value)
    description: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(String(255))
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enable_evaluation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Bumped by every seat-assignment batch; guards against concurrent runs
    seating_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    counters: Mapped[list["QueueCounter"]] = relationship(
        "QueueCounter",
        back_populates="activity",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def activity_type(self) -> ActivityType:
        return ActivityType(self.type)

    @property
    def queue_counters(self) -> dict[str, int]:
        """Last issued number per course."""
        return {counter.course: counter.last_number for counter in self.counters}

    def __repr__(self) -> str:
        return f"<Activity {self.name} ({self.type})>"
