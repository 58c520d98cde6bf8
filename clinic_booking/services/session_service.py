"""Per-visit tracking for multi-session packages.

A booking for ``session_count`` visits can carry up to that many
``BookingSession`` rows. Visits are scheduled one by one after the package is
bought, so they are not subject to the doctor overlap check.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_booking.core.errors import BookingValidationError, ConflictError, NotFoundError, UpstreamError
from clinic_booking.db.models import OPEN_SESSION_STATUSES, Booking, BookingSession, BookingStatus, SessionStatus
from clinic_booking.schemas.booking_session import SessionCreateItem, SessionUpdateRequest
from clinic_booking.services.datetime_normalizer import parse_date, parse_time, to_date, to_time

logger = logging.getLogger(__name__)

UPDATABLE_SESSION_FIELDS = frozenset(
    {"scheduled_date", "scheduled_time", "status", "attended_date", "notes", "expires_at"}
)
RESCHEDULE_FIELDS = frozenset({"scheduled_date", "scheduled_time"})


@dataclass(frozen=True)
class SessionProgress:
    attended: int
    remaining: int
    expired: int
    total: int


@dataclass(frozen=True)
class AutoCompleteResult:
    updated: int
    skipped: int


def session_progress(sessions: Iterable[BookingSession], now: datetime | None = None) -> SessionProgress:
    """Open sessions past their expiry count as expired, not remaining."""
    sessions = list(sessions)
    lapsed = [session.status in OPEN_SESSION_STATUSES and is_session_expired(session, now) for session in sessions]
    return SessionProgress(
        attended=sum(1 for session in sessions if session.status == SessionStatus.COMPLETED.value),
        remaining=sum(
            1 for session, gone in zip(sessions, lapsed) if session.status in OPEN_SESSION_STATUSES and not gone
        ),
        expired=sum(
            1 for session, gone in zip(sessions, lapsed) if gone or session.status == SessionStatus.EXPIRED.value
        ),
        total=len(sessions),
    )


def is_session_expired(session: BookingSession, now: datetime | None = None) -> bool:
    if session.expires_at is None:
        return False
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        # SQLite hands timestamps back without their zone
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at < (now or datetime.now(UTC))


def _session_date(raw, field: str) -> date | None:
    if raw is None:
        return None
    canonical = parse_date(raw)
    if canonical is None:
        raise BookingValidationError(f"Invalid {field}")
    return to_date(canonical)


def _session_time(raw) -> time | None:
    if raw is None:
        return None
    canonical = parse_time(raw)
    if canonical is None:
        raise BookingValidationError("Invalid scheduled_time")
    return to_time(canonical)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Session number already exists for this booking") from None
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamError("Booking storage is unavailable") from exc


def list_sessions(db: Session, booking: Booking) -> list[BookingSession]:
    return list(
        db.scalars(
            select(BookingSession)
            .where(BookingSession.booking_id == booking.id)
            .order_by(BookingSession.session_number)
        ).all()
    )


def create_sessions(db: Session, booking: Booking, items: list[SessionCreateItem]) -> list[BookingSession]:
    if not items:
        raise BookingValidationError("No sessions provided")
    if booking.status == BookingStatus.CANCELLED.value:
        raise ConflictError("Sessions cannot be added to a cancelled booking")

    taken = {session.session_number for session in list_sessions(db, booking)}
    next_number = max(taken, default=0) + 1
    created = []
    for item in items:
        number = item.session_number
        if number is None:
            while next_number in taken:
                next_number += 1
            number = next_number
        if number > booking.session_count:
            raise BookingValidationError(f"Booking only includes {booking.session_count} sessions")
        if number in taken:
            raise ConflictError(f"Session {number} already exists for this booking")
        taken.add(number)

        scheduled_date = _session_date(item.scheduled_date, "scheduled_date")
        status = item.status
        if status is None:
            status = SessionStatus.SCHEDULED if scheduled_date else SessionStatus.PENDING
        created.append(
            BookingSession(
                booking_id=booking.id,
                session_number=number,
                scheduled_date=scheduled_date,
                scheduled_time=_session_time(item.scheduled_time),
                status=status.value,
                notes=item.notes,
                expires_at=item.expires_at,
            )
        )

    db.add_all(created)
    _commit(db)
    for session in created:
        db.refresh(session)
    logger.info("booking_sessions_created booking_id=%s count=%s", booking.id, len(created))
    return created


def update_session(
    db: Session,
    booking: Booking,
    session_id: int,
    payload: SessionUpdateRequest,
) -> BookingSession:
    session = db.scalar(
        select(BookingSession).where(BookingSession.id == session_id, BookingSession.booking_id == booking.id)
    )
    if not session:
        raise NotFoundError("Session not found")

    changes = payload.model_dump(include=set(UPDATABLE_SESSION_FIELDS), exclude_unset=True)
    if not changes:
        raise BookingValidationError("No valid fields to update")
    rescheduling = bool(changes.keys() & RESCHEDULE_FIELDS)
    if rescheduling and "status" not in changes and session.status not in OPEN_SESSION_STATUSES:
        raise ConflictError("Only pending or scheduled sessions can be rescheduled")

    if "scheduled_date" in changes:
        session.scheduled_date = _session_date(changes["scheduled_date"], "scheduled_date")
    if "scheduled_time" in changes:
        session.scheduled_time = _session_time(changes["scheduled_time"])
    if "attended_date" in changes:
        session.attended_date = _session_date(changes["attended_date"], "attended_date")
    if "notes" in changes:
        session.notes = changes["notes"]
    if "expires_at" in changes:
        session.expires_at = changes["expires_at"]
    if changes.get("status") is not None:
        session.status = SessionStatus(changes["status"]).value
    elif rescheduling and session.scheduled_date is not None:
        session.status = SessionStatus.SCHEDULED.value

    if session.status == SessionStatus.COMPLETED.value and session.attended_date is None:
        session.attended_date = session.scheduled_date or datetime.now(UTC).date()
    session.updated_at = datetime.now(UTC)
    _commit(db)
    db.refresh(session)
    logger.info("booking_session_updated id=%s booking_id=%s status=%s", session.id, booking.id, session.status)
    return session


def auto_complete_sessions(
    db: Session,
    today: date | None = None,
    max_age_days: int = 60,
    dry_run: bool = False,
) -> AutoCompleteResult:
    """Mark open sessions whose day has passed as attended.

    Only sessions scheduled within the last ``max_age_days`` days are touched.
    """
    today = today or datetime.now(UTC).date()
    cutoff = today - timedelta(days=max_age_days)
    sessions = db.scalars(
        select(BookingSession).where(
            BookingSession.status.in_(OPEN_SESSION_STATUSES),
            BookingSession.scheduled_date < today,
            BookingSession.scheduled_date >= cutoff,
        )
    ).all()
    if dry_run or not sessions:
        return AutoCompleteResult(updated=0, skipped=len(sessions))

    now = datetime.now(UTC)
    for session in sessions:
        session.status = SessionStatus.COMPLETED.value
        session.attended_date = session.scheduled_date
        session.updated_at = now
    _commit(db)
    logger.info("booking_sessions_auto_completed count=%s before=%s", len(sessions), today.isoformat())
    return AutoCompleteResult(updated=len(sessions), skipped=0)
