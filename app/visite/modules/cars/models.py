from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.visite.models import Base

if TYPE_CHECKING:
    from app.visite.models import User
    from app.visite.modules.bookings.models import Booking


class Car(Base):
    __tablename__ = "cars"
    __table_args__ = (
        Index("idx_cars_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    license_plate: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # e.g. "1234|أ|56"
    brand: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="cars")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="car", cascade="all, delete")

    @property
    def label(self) -> str:
        return f"{self.brand} {self.model} ({self.license_plate})"
