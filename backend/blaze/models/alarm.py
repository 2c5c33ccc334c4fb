"""
Blaze Backend — Alarm SQLAlchemy Model
=======================================

What:  ORM model for the `alarms` table: one row per physical fire alarm.
Why:   The controller only knows the alarm's serial; the row tells us where
       the alarm is and which user must confirm its triggers.

Lifecycle:
    1. Registered with its serial and location "Unknown", no owner
    2. Linked to a user via POST /alarm (location set at the same time)
    3. Looked up by serial on every GET /api/confirm
"""

from sqlalchemy import ForeignKey, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from blaze.database import Base

UNKNOWN_LOCATION = "Unknown"


class Alarm(Base):
    """A physical alarm device identified by its serial."""

    __tablename__ = "alarms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    alarm_serial: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)

    location: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default=UNKNOWN_LOCATION,
        server_default=text(f"'{UNKNOWN_LOCATION}'"),
    )

    # NULL until the alarm is linked to a user
    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Alarm(id={self.id}, serial='{self.alarm_serial}', "
            f"location='{self.location}', user_id={self.user_id})>"
        )
