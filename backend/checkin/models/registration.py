"""Registration model - one registrant in one activity."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from checkin.database import Base


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    CHECKED_IN = "checked-in"
    INTERVIEWING = "interviewing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    WAITLISTED = "waitlisted"


# Statuses reached only through check-in; a ticket held in one of these is consumed
PROCESSED_STATUSES = (
    RegistrationStatus.CHECKED_IN.value,
    RegistrationStatus.INTERVIEWING.value,
    RegistrationStatus.COMPLETED.value,
)

_NOT_CANCELLED = text("status != 'cancelled'")


class Registration(Base):
    """
    A registrant in an activity.

    `queue_number` is the raw ticket integer, `display_queue_number` the
    label shown to people ("ANE-007"). Both may be pre-filled by an import
    before check-in. At most one non-cancelled registration exists per
    (activity, national id).
    """

    __tablename__ = "registrations"
    __table_args__ = (
        Index(
            "uq_registrations_activity_national_id",
            "activity_id",
            "national_id",
            unique=True,
            postgresql_where=_NOT_CANCELLED,
            sqlite_where=_NOT_CANCELLED,
        ),
        Index("ix_registrations_activity_course_status", "activity_id", "course", "status"),
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

    # Registrant
    national_id: Mapped[str] = mapped_column(String(20), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    student_id: Mapped[str | None] = mapped_column(String(50))
    course: Mapped[str | None] = mapped_column(String(255))
    time_slot: Mapped[str | None] = mapped_column(String(50))
    line_user_id: Mapped[str | None] = mapped_column(String(64))
    import_order: Mapped[int | None] = mapped_column(Integer)

    # Check-in state
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RegistrationStatus.REGISTERED.value,
    )
    queue_number: Mapped[int | None] = mapped_column(Integer)
    display_queue_number: Mapped[str | None] = mapped_column(String(32))
    seat_number: Mapped[str | None] = mapped_column(String(32))
    called_at: Mapped[datetime | None] = mapped_column(DateTime)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    registered_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    @property
    def is_processed(self) -> bool:
        return self.status in PROCESSED_STATUSES

    def __repr__(self) -> str:
        return f"<Registration {self.national_id} {self.status} {self.display_queue_number or ''}>"
