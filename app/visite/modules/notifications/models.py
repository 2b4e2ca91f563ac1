from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.visite.models import Base

if TYPE_CHECKING:
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking


NOTIFICATION_TYPES = (
    "BOOKING_CONFIRMATION",
    "PAYMENT_CONFIRMATION",
    "BOOKING_REMINDER",
    "BOOKING_CANCELLATION",
    "PASSWORD_RESET",
)
CHANNELS = ("EMAIL", "SMS")


class Notification(Base):
    """One delivery attempt on one channel."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_id", "user_id"),
        Index("idx_notifications_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)
    channel: Mapped[str] = mapped_column(String(8), nullable=False)
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # SENT, FAILED
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User | None"] = relationship("User", back_populates="notifications")
    booking: Mapped["Booking | None"] = relationship("Booking", back_populates="notifications")
