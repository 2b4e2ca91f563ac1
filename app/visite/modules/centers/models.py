from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.visite.models import Base, JSONType

if TYPE_CHECKING:
    from app.visite.modules.bookings.models import Booking
    from app.visite.modules.time_slots.models import TimeSlot


class InspectionCenter(Base):
    __tablename__ = "inspection_centers"
    __table_args__ = (
        Index("idx_inspection_centers_name", "name"),
        Index("idx_inspection_centers_city", "city"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    address_ar: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    services: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=list)  # e.g. ["Visite technique", "Contre-visite"]
    working_hours: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=dict)  # {"monday": "08:00-18:00", ...}

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    time_slots: Mapped[list["TimeSlot"]] = relationship("TimeSlot", back_populates="center", cascade="all, delete")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="center", cascade="all, delete")

    def localized_name(self, locale: str) -> str:
        if locale == "ar":
            return self.name_ar or self.name
        if locale == "en":
            return self.name_en or self.name
        return self.name

    def localized_address(self, locale: str) -> str:
        if locale == "ar":
            return self.address_ar or self.address
        if locale == "en":
            return self.address_en or self.address
        return self.address
