import logging
from datetime import date, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_booking.core.errors import ConflictError
from clinic_booking.core.metrics import BOOKING_CONFLICTS
from clinic_booking.db.models import ACTIVE_BOOKING_STATUSES, Booking, Service
from clinic_booking.services.datetime_normalizer import time_to_seconds

logger = logging.getLogger(__name__)

DOCTOR_SLOT_TAKEN_DETAIL = "Doctor already has a booking in this time slot."

Interval = tuple[int, int]


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap test: intervals that only touch do not overlap."""
    return start_a < end_b and end_a > start_b


def load_active_intervals(
    db: Session,
    doctor_id: int,
    booking_date: date,
    exclude_booking_id: int | None = None,
) -> list[Interval]:
    """Return ``(start, end)`` in seconds since midnight for the doctor's active bookings."""
    query = (
        select(Booking.booking_time, Booking.booking_end_time, Service.duration_minutes)
        .join(Service, Booking.service_id == Service.id)
        .where(
            Booking.doctor_id == doctor_id,
            Booking.booking_date == booking_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    intervals = []
    for start, end, duration_minutes in db.execute(query).all():
        start_seconds = time_to_seconds(start)
        if end is not None:
            end_seconds = time_to_seconds(end)
        else:
            # legacy rows were stored without an end time
            end_seconds = start_seconds + int(timedelta(minutes=duration_minutes).total_seconds())
        intervals.append((start_seconds, end_seconds))
    return sorted(intervals)


def assert_no_overlap(
    db: Session,
    doctor_id: int | None,
    booking_date: date,
    start_time: time,
    end_time: time,
    exclude_booking_id: int | None = None,
) -> None:
    """Raise ``ConflictError`` if the doctor is busy during ``[start_time, end_time)``.

    Without a doctor there is nothing to partition on, so the check passes.
    """
    if doctor_id is None:
        return

    new_start = time_to_seconds(start_time)
    new_end = time_to_seconds(end_time)
    for existing_start, existing_end in load_active_intervals(
        db,
        doctor_id=doctor_id,
        booking_date=booking_date,
        exclude_booking_id=exclude_booking_id,
    ):
        if intervals_overlap(new_start, new_end, existing_start, existing_end):
            BOOKING_CONFLICTS.labels(reason="overlap").inc()
            logger.info(
                "booking_overlap doctor_id=%s date=%s start=%s end=%s",
                doctor_id,
                booking_date.isoformat(),
                start_time.isoformat(),
                end_time.isoformat(),
            )
            raise ConflictError(DOCTOR_SLOT_TAKEN_DETAIL)
