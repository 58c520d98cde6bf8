from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_booking.core.config import settings
from clinic_booking.core.errors import BookingValidationError, NotFoundError
from clinic_booking.db.models import Doctor, Service
from clinic_booking.services.datetime_normalizer import (
    parse_date,
    parse_time,
    seconds_to_time,
    time_to_seconds,
    to_date,
)
from clinic_booking.services.overlap_guard import Interval, intervals_overlap, load_active_intervals


def slot_grid(
    duration_minutes: int,
    day_start: time,
    day_end: time,
    interval_minutes: int,
) -> list[int]:
    """Candidate start times in seconds; every slot must finish by ``day_end``."""
    if duration_minutes <= 0 or interval_minutes <= 0:
        raise BookingValidationError("Durations must be positive")
    duration = duration_minutes * 60
    last_start = time_to_seconds(day_end) - duration
    return list(range(time_to_seconds(day_start), last_start + 1, interval_minutes * 60))


def available_slots(
    reserved: Iterable[Interval],
    duration_minutes: int,
    day_start: time | None = None,
    day_end: time | None = None,
    interval_minutes: int | None = None,
) -> list[str]:
    """Free slot start times as canonical ``HH:MM:SS`` labels, ascending."""
    reserved = list(reserved)
    duration = duration_minutes * 60
    free = []
    if day_start is None:
        day_start = settings.slot_day_start
    if day_end is None:
        day_end = settings.slot_day_end
    if interval_minutes is None:
        interval_minutes = settings.slot_interval_minutes
    for start in slot_grid(duration_minutes, day_start, day_end, interval_minutes):
        end = start + duration
        if not any(intervals_overlap(start, end, busy_start, busy_end) for busy_start, busy_end in reserved):
            free.append(seconds_to_time(start).isoformat())
    return free


def get_available_slots(db: Session, doctor_id: int, raw_date: str, service_id: int) -> tuple[str, list[str]]:
    booking_date = parse_date(raw_date)
    if booking_date is None:
        raise BookingValidationError("Invalid booking date")

    service = db.scalar(select(Service).where(Service.id == service_id))
    if not service:
        raise NotFoundError("Service not found")
    doctor = db.scalar(select(Doctor).where(Doctor.id == doctor_id))
    if not doctor:
        raise NotFoundError("Doctor not found")
    if not doctor.is_active:
        return booking_date, []

    reserved = load_active_intervals(db, doctor_id=doctor_id, booking_date=to_date(booking_date))
    return booking_date, available_slots(reserved, service.duration_minutes)


MAX_SEARCH_DAYS = 31


@dataclass(frozen=True)
class DoctorDaySlots:
    booking_date: str
    doctor_id: int
    doctor_name: str
    slots: list[str]


def _window_bound(raw: str | None) -> str | None:
    if raw is None:
        return None
    canonical = parse_time(raw)
    if canonical is None:
        raise BookingValidationError("Invalid time window")
    return canonical


def within_window(slots: Iterable[str], window_start: str | None, window_end: str | None) -> list[str]:
    """Keep canonical start times inside ``[window_start, window_end]``; a missing bound is open."""
    return [
        slot
        for slot in slots
        if (window_start is None or slot >= window_start) and (window_end is None or slot <= window_end)
    ]


def search_available_slots(
    db: Session,
    service_id: int,
    raw_date_from: str,
    raw_date_to: str | None = None,
    doctor_ids: list[int] | None = None,
    raw_window_start: str | None = None,
    raw_window_end: str | None = None,
) -> list[DoctorDaySlots]:
    """Free slots for one service across several doctors and days.

    Days run from ``raw_date_from`` to ``raw_date_to`` inclusive. Doctors
    default to every active doctor; inactive doctors and empty results are
    left out. Results are ordered by day, then doctor id.
    """
    date_from = parse_date(raw_date_from)
    if date_from is None:
        raise BookingValidationError("Invalid start date")
    date_to = parse_date(raw_date_to) if raw_date_to is not None else date_from
    if date_to is None:
        raise BookingValidationError("Invalid end date")
    first_day, last_day = to_date(date_from), to_date(date_to)
    if last_day < first_day:
        raise BookingValidationError("End date is before start date")
    if (last_day - first_day).days >= MAX_SEARCH_DAYS:
        raise BookingValidationError(f"Search range is limited to {MAX_SEARCH_DAYS} days")

    window_start = _window_bound(raw_window_start)
    window_end = _window_bound(raw_window_end)
    if window_start and window_end and window_start > window_end:
        raise BookingValidationError("Time window ends before it starts")

    service = db.scalar(select(Service).where(Service.id == service_id))
    if not service:
        raise NotFoundError("Service not found")

    query = select(Doctor).where(Doctor.is_active.is_(True)).order_by(Doctor.id)
    if doctor_ids:
        requested = set(doctor_ids)
        found = set(db.scalars(select(Doctor.id).where(Doctor.id.in_(requested))))
        missing = sorted(requested - found)
        if missing:
            raise NotFoundError(f'Doctor with ID "{missing[0]}" not found.')
        query = query.where(Doctor.id.in_(requested))
    doctors = db.scalars(query).all()

    results = []
    day = first_day
    while day <= last_day:
        for doctor in doctors:
            reserved = load_active_intervals(db, doctor_id=doctor.id, booking_date=day)
            slots = within_window(available_slots(reserved, service.duration_minutes), window_start, window_end)
            if slots:
                results.append(
                    DoctorDaySlots(
                        booking_date=day.isoformat(),
                        doctor_id=doctor.id,
                        doctor_name=doctor.full_name,
                        slots=slots,
                    )
                )
        day += timedelta(days=1)
    return results
