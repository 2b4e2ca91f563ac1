from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.visite.models import Base

if TYPE_CHECKING:
    from app.visite.modules.bookings.models import Booking


PAYMENT_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payments_status", "status"),
        Index("idx_payments_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="MAD")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)  # e.g. "CMI"

    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cmi_order_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    cmi_response_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    cmi_response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payment")
