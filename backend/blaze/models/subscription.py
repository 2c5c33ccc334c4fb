"""
Blaze Backend — Push Subscription SQLAlchemy Model
===================================================

What:  ORM model for the `subscriptions` table: one row per browser/device
       registered for web push.
How:   Stores the fields of a PushSubscription (endpoint, expiration time
       and the p256dh/auth keys) flattened into columns.

The endpoint is unique: the push service issues one endpoint per
installation, so a second registration of the same endpoint is a conflict.
"""

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blaze.database import Base


class Subscription(Base):
    """A device subscription owned by a user."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    endpoint: Mapped[str] = mapped_column(Text, unique=True, nullable=False)

    # DOMHighResTimeStamp sent by the browser, usually null
    expiration_time: Mapped[str | None] = mapped_column(String(64), nullable=True)

    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def to_subscription_info(self) -> dict:
        """The dict shape expected by the browser Push API and pywebpush."""
        return {
            "endpoint": self.endpoint,
            "expirationTime": self.expiration_time,
            "keys": {
                "p256dh": self.p256dh,
                "auth": self.auth,
            },
        }

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id})>"
