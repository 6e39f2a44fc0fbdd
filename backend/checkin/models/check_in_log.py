"""CheckInLog model - audit trail of check-ins and check-outs."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from checkin.database import Base


class CheckInLog(Base):
    __tablename__ = "check_in_logs"

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
    registration_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    activity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    national_id: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_seat: Mapped[str | None] = mapped_column(String(32))  # Seat label or "Q ANE-007"
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CheckInLog {self.national_id} {self.status}>"
