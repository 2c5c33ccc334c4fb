"""
Blaze Backend — User SQLAlchemy Model
======================================

What:  ORM model for the `users` table.
Who:   Looked up by username at login and when a bearer token is resolved.

`password` holds a PBKDF2 hash (see services/passwords.py). It is NULL for
accounts created outside POST /register; those cannot log in.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, false
from sqlalchemy.orm import Mapped, mapped_column

from blaze.database import Base


class User(Base):
    """An account that can own alarms and register devices for push."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Unique: tokens carry the username, not the id
    username: Mapped[str] = mapped_column(String(150), unique=True, nullable=False, index=True)

    first_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)

    admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', admin={self.admin})>"
