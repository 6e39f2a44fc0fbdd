"""QueueCounter model - last issued ticket number per (activity, course)."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from checkin.database import Base


class QueueCounter(Base):
    """
    Durable high-water mark of the ticket sequence for one course.

    Writes are compare-and-swap on `version`, so two allocations that read
    the same row cannot both commit.
    """

    __tablename__ = "queue_counters"
    __table_args__ = (
        UniqueConstraint("activity_id", "course", name="uq_queue_counters_activity_course"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
    )
    course: Mapped[str] = mapped_column(String(255), nullable=False)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    activity: Mapped["Activity"] = relationship("Activity", back_populates="counters")

    def __repr__(self) -> str:
        return f"<QueueCounter {self.course}={self.last_number} v{self.version}>"
