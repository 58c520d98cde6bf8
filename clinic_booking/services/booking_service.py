import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_booking.core.cache import BOOKINGS_CACHE_PREFIX, booking_cache, bookings_page_key
from clinic_booking.core.config import settings
from clinic_booking.core.errors import BookingValidationError, ConflictError, NotFoundError, UpstreamError
from clinic_booking.core.metrics import BOOKING_CONFLICTS
from clinic_booking.db.models import Booking, BookingSource, BookingStatus, Doctor, Profile, Service
from clinic_booking.schemas.booking import (
    AdminBookingCreateRequest,
    BookingCreateRequest,
    BookingRescheduleRequest,
    BookingResponse,
)
from clinic_booking.services.datetime_normalizer import add_minutes, parse_date, parse_time, to_date, to_time
from clinic_booking.services.overlap_guard import DOCTOR_SLOT_TAKEN_DETAIL, assert_no_overlap
from clinic_booking.services.pricing import clamp_session_count, price_breakdown, session_count_from_package

logger = logging.getLogger(__name__)

LOCK_CONFLICT_DETAIL = "Booking for this doctor is in progress. Retry the request."
IDEMPOTENCY_KEY_REUSE_DETAIL = "Idempotency key already used with another booking"
PG_LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"

ALLOWED_STATUS_TRANSITIONS: dict[str, set[str]] = {
    BookingStatus.PENDING.value: {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value},
    BookingStatus.CONFIRMED.value: {BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value},
    BookingStatus.COMPLETED.value: set(),
    BookingStatus.CANCELLED.value: set(),
}


@dataclass(frozen=True)
class BookingSchedule:
    booking_date: date
    start_time: time
    end_time: time


def _is_postgresql_session(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def _is_pg_lock_not_available(exc: OperationalError) -> bool:
    original_error = getattr(exc, "orig", None)
    if original_error is None:
        return False

    sqlstate = getattr(original_error, "sqlstate", None)
    if sqlstate is None:
        sqlstate = getattr(original_error, "pgcode", None)

    return sqlstate == PG_LOCK_NOT_AVAILABLE_SQLSTATE


def resolve_schedule(raw_date, raw_time, duration_minutes: int) -> BookingSchedule:
    booking_date = parse_date(raw_date)
    if booking_date is None:
        raise BookingValidationError("Invalid booking date")
    start_time = parse_time(raw_time)
    if start_time is None:
        raise BookingValidationError("Invalid booking time")
    end_time = add_minutes(start_time, duration_minutes)
    if end_time is None:
        raise BookingValidationError("Booking must end on the same day it starts")
    return BookingSchedule(
        booking_date=to_date(booking_date),
        start_time=to_time(start_time),
        end_time=to_time(end_time),
    )


def requested_session_count(session_count: int | None, package: str | None) -> int:
    """Session count as asked for, before clamping."""
    if session_count is not None:
        return session_count
    if package:
        return session_count_from_package(package)
    return 1


def resolve_session_count(session_count: int | None, package: str | None) -> int:
    return clamp_session_count(requested_session_count(session_count, package))


def _get_service(db: Session, service_id: int) -> Service:
    service = db.scalar(select(Service).where(Service.id == service_id))
    if not service:
        raise NotFoundError("Service not found")
    return service


def _get_doctor(db: Session, doctor_id: int | None) -> Doctor | None:
    if doctor_id is None:
        return None
    doctor = db.scalar(select(Doctor).where(Doctor.id == doctor_id))
    if not doctor:
        raise NotFoundError("Doctor not found")
    if not doctor.is_active:
        raise BookingValidationError("Doctor is not accepting bookings")
    return doctor


def _resolve_customer(db: Session, payload: AdminBookingCreateRequest) -> Profile:
    if payload.customer_id is not None:
        customer = db.scalar(select(Profile).where(Profile.id == payload.customer_id))
        if not customer:
            raise NotFoundError(f'Customer with ID "{payload.customer_id}" not found.')
        return customer
    if payload.customer_email:
        customer = db.scalar(select(Profile).where(Profile.email == payload.customer_email.lower()))
        if not customer:
            raise NotFoundError(f'Customer with email "{payload.customer_email}" not found.')
        return customer
    raise BookingValidationError("Customer id or email is required")


def _get_booking_by_idempotency_key(db: Session, customer_id: int, idempotency_key: str) -> Booking | None:
    return db.scalar(
        select(Booking).where(
            Booking.customer_id == customer_id,
            Booking.idempotency_key == idempotency_key,
        )
    )


def _matches_request(booking: Booking, payload: BookingCreateRequest) -> bool:
    return (
        booking.service_id == payload.service_id
        and booking.doctor_id == payload.doctor_id
        and parse_date(payload.date) == booking.booking_date.isoformat()
        and parse_time(payload.time) == booking.booking_time.isoformat()
        and resolve_session_count(payload.session_count, payload.package) == booking.session_count
    )


def _replay_idempotent_booking(
    db: Session,
    customer_id: int,
    idempotency_key: str,
    payload: BookingCreateRequest,
) -> Booking | None:
    existing_booking = _get_booking_by_idempotency_key(db, customer_id, idempotency_key)
    if existing_booking is None:
        return None
    if not _matches_request(existing_booking, payload):
        raise ConflictError(IDEMPOTENCY_KEY_REUSE_DETAIL)
    return existing_booking


def _commit_with_overlap_guard(db: Session, booking: Booking, exclude_booking_id: int | None = None) -> None:
    """Check the doctor's calendar and commit ``booking`` in one transaction.

    On PostgreSQL the doctor row is locked so that concurrent requests for the
    same doctor queue up behind the check. The partial unique index on active
    bookings catches same-start collisions on every backend.
    """
    try:
        if booking.doctor_id is not None and _is_postgresql_session(db):
            db.execute(select(Doctor.id).where(Doctor.id == booking.doctor_id).with_for_update(nowait=True))
        assert_no_overlap(
            db,
            doctor_id=booking.doctor_id,
            booking_date=booking.booking_date,
            start_time=booking.booking_time,
            end_time=booking.booking_end_time,
            exclude_booking_id=exclude_booking_id,
        )
        db.add(booking)
        db.commit()
    except ConflictError:
        db.rollback()
        raise
    except OperationalError as exc:
        db.rollback()
        if _is_pg_lock_not_available(exc):
            BOOKING_CONFLICTS.labels(reason="lock").inc()
            raise ConflictError(LOCK_CONFLICT_DETAIL) from None
        raise UpstreamError("Booking storage is unavailable") from exc
    except IntegrityError:
        db.rollback()
        BOOKING_CONFLICTS.labels(reason="constraint").inc()
        raise ConflictError(DOCTOR_SLOT_TAKEN_DETAIL) from None
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamError("Booking storage is unavailable") from exc

    db.refresh(booking)
    booking_cache.invalidate_prefix(BOOKINGS_CACHE_PREFIX)


def create_customer_booking(
    db: Session,
    payload: BookingCreateRequest,
    customer: Profile,
    idempotency_key: str | None = None,
) -> Booking:
    if idempotency_key:
        replayed = _replay_idempotent_booking(db, customer.id, idempotency_key, payload)
        if replayed is not None:
            return replayed

    service = _get_service(db, payload.service_id)
    if not service.is_active:
        raise BookingValidationError("Service is not available for booking")
    _get_doctor(db, payload.doctor_id)

    requested = requested_session_count(payload.session_count, payload.package)
    if service.session_options and requested not in service.session_options:
        raise BookingValidationError(f"Service {service.name!r} is not offered as a {requested}-session package")
    session_count = clamp_session_count(requested)
    pricing = price_breakdown(service.base_price, session_count)
    schedule = resolve_schedule(payload.date, payload.time, service.duration_minutes)

    booking = Booking(
        customer_id=customer.id,
        doctor_id=payload.doctor_id,
        service_id=service.id,
        service_title=service.name,
        customer_name=customer.full_name,
        customer_email=customer.email,
        customer_phone=payload.phone or customer.phone,
        address=payload.address,
        notes=payload.notes,
        booking_date=schedule.booking_date,
        booking_time=schedule.start_time,
        booking_end_time=schedule.end_time,
        session_count=pricing.session_count,
        unit_price=pricing.unit_price,
        discount_percent=pricing.discount_percent,
        total_amount=pricing.total_amount,
        status=BookingStatus.PENDING.value,
        source=BookingSource.CUSTOMER.value,
        idempotency_key=idempotency_key,
    )
    try:
        _commit_with_overlap_guard(db, booking)
    except ConflictError:
        # a concurrent retry carrying the same key may have won the race
        if idempotency_key:
            replayed = _replay_idempotent_booking(db, customer.id, idempotency_key, payload)
            if replayed is not None:
                return replayed
        raise

    logger.info(
        "booking_created id=%s source=customer doctor_id=%s date=%s time=%s",
        booking.id,
        booking.doctor_id,
        booking.booking_date.isoformat(),
        booking.booking_time.isoformat(),
    )
    return booking


def create_admin_booking(db: Session, payload: AdminBookingCreateRequest) -> Booking:
    customer = _resolve_customer(db, payload)
    service = _get_service(db, payload.service_id)
    _get_doctor(db, payload.doctor_id)

    session_count = resolve_session_count(payload.session_count, payload.package)
    pricing = price_breakdown(
        service.base_price,
        session_count,
        unit_price=payload.unit_price,
        discount_percent=payload.discount_percent,
    )
    schedule = resolve_schedule(payload.date, payload.time, service.duration_minutes)

    booking = Booking(
        customer_id=customer.id,
        doctor_id=payload.doctor_id,
        service_id=service.id,
        service_title=service.name,
        customer_name=payload.customer_name or customer.full_name,
        customer_email=customer.email,
        customer_phone=payload.phone or customer.phone,
        address=payload.address,
        notes=payload.notes,
        booking_date=schedule.booking_date,
        booking_time=schedule.start_time,
        booking_end_time=schedule.end_time,
        session_count=pricing.session_count,
        unit_price=pricing.unit_price,
        discount_percent=pricing.discount_percent,
        total_amount=pricing.total_amount,
        status=payload.status.value,
        source=BookingSource.ADMIN.value,
    )
    _commit_with_overlap_guard(db, booking)
    logger.info(
        "booking_created id=%s source=admin customer_id=%s doctor_id=%s date=%s time=%s",
        booking.id,
        booking.customer_id,
        booking.doctor_id,
        booking.booking_date.isoformat(),
        booking.booking_time.isoformat(),
    )
    return booking


def change_booking_status(db: Session, booking: Booking, new_status: BookingStatus) -> Booking:
    current = booking.status
    target = new_status.value
    if current == target:
        return booking
    if target not in ALLOWED_STATUS_TRANSITIONS.get(current, set()):
        raise ConflictError(f"Cannot change booking status from {current} to {target}")

    if target == BookingStatus.CANCELLED.value:
        booking.cancel()
    else:
        booking.status = target
        booking.updated_at = datetime.now(UTC)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamError("Booking storage is unavailable") from exc

    db.refresh(booking)
    booking_cache.invalidate_prefix(BOOKINGS_CACHE_PREFIX)
    logger.info("booking_status_changed id=%s from=%s to=%s", booking.id, current, target)
    return booking


def reschedule_booking(db: Session, booking: Booking, payload: BookingRescheduleRequest) -> Booking:
    """Move an active booking, optionally assigning or changing its doctor."""
    if not booking.is_active:
        raise ConflictError("Only pending or confirmed bookings can be rescheduled")

    service = _get_service(db, booking.service_id)
    doctor_id = booking.doctor_id
    if payload.doctor_id is not None:
        _get_doctor(db, payload.doctor_id)
        doctor_id = payload.doctor_id
    schedule = resolve_schedule(payload.date, payload.time, service.duration_minutes)

    booking.doctor_id = doctor_id
    booking.booking_date = schedule.booking_date
    booking.booking_time = schedule.start_time
    booking.booking_end_time = schedule.end_time
    booking.updated_at = datetime.now(UTC)
    _commit_with_overlap_guard(db, booking, exclude_booking_id=booking.id)
    logger.info(
        "booking_rescheduled id=%s doctor_id=%s date=%s time=%s",
        booking.id,
        booking.doctor_id,
        booking.booking_date.isoformat(),
        booking.booking_time.isoformat(),
    )
    return booking


def list_bookings_page(db: Session, page: int, page_size: int) -> list[dict]:
    key = bookings_page_key(page, page_size)
    cached = booking_cache.get(key)
    if cached is not None:
        return cached

    bookings = db.scalars(
        select(Booking)
        .order_by(Booking.booking_date.desc(), Booking.booking_time.desc(), Booking.id.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
    ).all()
    data = [BookingResponse.model_validate(booking).model_dump(mode="json") for booking in bookings]
    booking_cache.set(key, data, settings.cache_ttl_seconds)
    return data
