"""QueueChannel model - one service counter calling tickets of one course."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from checkin.database import Base


class QueueChannel(Base):
    """
    A physical or virtual service counter.

    States:
    - idle: no `serving_course`
    - assigned: `serving_course` set, nothing called yet
    - serving: `current_*` populated

    `ping_id` strictly increases on every call or recall so passive displays
    can tell a new event from an unchanged snapshot.
    """

    __tablename__ = "queue_channels"

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
    channel_number: Mapped[int] = mapped_column(Integer, nullable=False)
    channel_name: Mapped[str] = mapped_column(String(100), nullable=False)
    serving_course: Mapped[str | None] = mapped_column(String(255))

    # Current call
    current_queue_number: Mapped[int | None] = mapped_column(Integer)
    current_display_queue_number: Mapped[str | None] = mapped_column(String(32))
    current_student_name: Mapped[str | None] = mapped_column(String(255))
    current_registration_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    ping_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_called_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    @property
    def state(self) -> str:
        if not self.serving_course:
            return "idle"
        if not self.current_display_queue_number:
            return "assigned"
        return "serving"

    def __repr__(self) -> str:
        return f"<QueueChannel {self.channel_name} ({self.serving_course or 'idle'})>"
