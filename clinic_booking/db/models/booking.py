from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_booking.db.base import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingSource(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    LEGACY_IMPORT = "legacy_import"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

_ACTIVE_STATUS_CLAUSE = text("status IN ('pending', 'confirmed')")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("customer_id", "idempotency_key", name="uq_bookings_customer_idempotency_key"),
        Index(
            "uq_bookings_doctor_active_start",
            "doctor_id",
            "booking_date",
            "booking_time",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
        ),
        CheckConstraint("session_count BETWEEN 1 AND 10", name="ck_bookings_session_count"),
        CheckConstraint("discount_percent BETWEEN 0 AND 100", name="ck_bookings_discount_percent"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    customer_id: Mapped[int | None] = mapped_column(
        ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    doctor_id: Mapped[int | None] = mapped_column(
        ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)

    service_title: Mapped[str] = mapped_column(String(160), nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    booking_time: Mapped[time] = mapped_column(Time, nullable=False)
    booking_end_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    session_count: Mapped[int] = mapped_column(nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percent: Mapped[int] = mapped_column(nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingSource.CUSTOMER.value)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    customer = relationship("Profile", back_populates="bookings")
    doctor = relationship("Doctor", back_populates="bookings")
    service = relationship("Service")
    sessions = relationship(
        "BookingSession",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingSession.session_number",
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def cancel(self) -> None:
        now = datetime.now(UTC)
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = now
        self.updated_at = now
