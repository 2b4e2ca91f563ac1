from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.visite.models import Base

if TYPE_CHECKING:
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.centers.models import InspectionCenter


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("center_id", "date", "start_time", name="uq_time_slots_center_date_start"),
        CheckConstraint("capacity >= 1", name="ck_time_slots_capacity"),
        CheckConstraint("booked_count >= 0", name="ck_time_slots_booked_count"),
        Index("idx_time_slots_date", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    center_id: Mapped[int] = mapped_column(ForeignKey("inspection_centers.id", ondelete="CASCADE"), nullable=False)

    date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM", local time
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # MAD

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    center: Mapped["InspectionCenter"] = relationship("InspectionCenter", back_populates="time_slots")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="time_slot", cascade="all, delete")

    @property
    def has_room(self) -> bool:
        return self.is_available and self.booked_count < self.capacity
