from datetime import date as date_type, datetime, time as time_type
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field, field_validator

from clinic_booking.db.models.booking import ACTIVE_BOOKING_STATUSES, BookingStatus


class BookingCreateRequest(BaseModel):
    service_id: int
    doctor_id: int | None = None
    session_count: int | None = None
    package: str | None = Field(default=None, max_length=60)
    date: str = Field(min_length=1, max_length=60)
    time: str = Field(min_length=1, max_length=20)
    address: str | None = Field(default=None, max_length=500)
    phone: str | None = Field(default=None, max_length=40)
    notes: str | None = Field(default=None, max_length=2000)


class AdminBookingCreateRequest(BookingCreateRequest):
    customer_id: int | None = None
    customer_email: EmailStr | None = None
    customer_name: str | None = Field(default=None, max_length=200)
    unit_price: Decimal | None = Field(default=None, ge=0, max_digits=10)
    discount_percent: int | None = Field(default=None, ge=0, le=100)
    status: BookingStatus = BookingStatus.PENDING

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, value: BookingStatus) -> BookingStatus:
        if value.value not in ACTIVE_BOOKING_STATUSES:
            raise ValueError("New bookings must be pending or confirmed")
        return value


class BookingRescheduleRequest(BaseModel):
    date: str = Field(min_length=1, max_length=60)
    time: str = Field(min_length=1, max_length=20)
    doctor_id: int | None = None


class BookingStatusUpdateRequest(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: int
    customer_id: int | None
    doctor_id: int | None
    service_id: int
    service_title: str
    customer_name: str | None
    customer_email: str | None
    customer_phone: str | None
    address: str | None
    notes: str | None
    booking_date: date_type
    booking_time: time_type
    booking_end_time: time_type | None
    session_count: int
    unit_price: Decimal
    discount_percent: int
    total_amount: Decimal
    status: str
    source: str
    created_at: datetime
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}


class AvailableSlotsResponse(BaseModel):
    date: str
    doctor_id: int
    service_id: int
    slots: list[str]
    labels: list[str]


class DoctorSlotsResponse(BaseModel):
    doctor_id: int
    doctor_name: str
    slots: list[str]
    labels: list[str]


class SlotSearchDayResponse(BaseModel):
    date: str
    doctors: list[DoctorSlotsResponse]
