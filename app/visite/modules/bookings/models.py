from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.visite.models import Base

if TYPE_CHECKING:
    from app.visite.models import User
    from app.visite.modules.cars.models import Car
    from app.visite.modules.centers.models import InspectionCenter
    from app.visite.modules.notifications.models import Notification
    from app.visite.modules.payments.models import Payment
    from app.visite.modules.time_slots.models import TimeSlot


BOOKING_STATUSES = ("PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW")
ACTIVE_STATUSES = ("PENDING", "CONFIRMED")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_user_id", "user_id"),
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_time_slot_id", "time_slot_id"),
        Index("idx_bookings_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # e.g. "VT12345678042"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    car_id: Mapped[int] = mapped_column(ForeignKey("cars.id", ondelete="CASCADE"), nullable=False)
    center_id: Mapped[int] = mapped_column(ForeignKey("inspection_centers.id", ondelete="CASCADE"), nullable=False)
    time_slot_id: Mapped[int] = mapped_column(ForeignKey("time_slots.id", ondelete="CASCADE"), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="bookings")
    car: Mapped["Car"] = relationship("Car", back_populates="bookings")
    center: Mapped["InspectionCenter"] = relationship("InspectionCenter", back_populates="bookings")
    time_slot: Mapped["TimeSlot"] = relationship("TimeSlot", back_populates="bookings")
    payment: Mapped["Payment | None"] = relationship(
        "Payment",
        back_populates="booking",
        uselist=False,
        cascade="all, delete",
    )
    notifications: Mapped[list["Notification"]] = relationship(
        "Notification",
        back_populates="booking",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
