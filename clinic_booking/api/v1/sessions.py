from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from clinic_booking.api.deps import get_current_user, get_owned_booking, require_roles
from clinic_booking.db.models import Profile, ProfileRole
from clinic_booking.db.session import get_db
from clinic_booking.schemas.booking_session import (
    BookingSessionResponse,
    BookingSessionsResponse,
    SessionBulkCreateRequest,
    SessionProgressResponse,
    SessionUpdateRequest,
)
from clinic_booking.services.session_service import (
    RESCHEDULE_FIELDS,
    create_sessions,
    list_sessions,
    session_progress,
    update_session,
)

router = APIRouter(prefix="/bookings/{booking_id}/sessions", tags=["sessions"])


@router.get("", response_model=BookingSessionsResponse, status_code=status.HTTP_200_OK)
def get_booking_sessions(
    booking_id: int,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingSessionsResponse:
    booking = get_owned_booking(booking_id, current_user, db)
    sessions = list_sessions(db, booking)
    progress = session_progress(sessions)
    return BookingSessionsResponse(
        booking_id=booking.id,
        session_count=booking.session_count,
        sessions=[BookingSessionResponse.model_validate(session) for session in sessions],
        progress=SessionProgressResponse(**asdict(progress)),
    )


@router.post("", response_model=list[BookingSessionResponse], status_code=status.HTTP_201_CREATED)
def add_booking_sessions(
    booking_id: int,
    payload: SessionBulkCreateRequest,
    current_user: Profile = Depends(require_roles(ProfileRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[BookingSessionResponse]:
    booking = get_owned_booking(booking_id, current_user, db)
    sessions = create_sessions(db, booking, payload.sessions)
    return [BookingSessionResponse.model_validate(session) for session in sessions]


@router.patch("/{session_id}", response_model=BookingSessionResponse, status_code=status.HTTP_200_OK)
def patch_booking_session(
    booking_id: int,
    session_id: int,
    payload: SessionUpdateRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingSessionResponse:
    booking = get_owned_booking(booking_id, current_user, db)
    # customers may only move their own visits
    if current_user.role != ProfileRole.ADMIN.value and payload.model_fields_set - RESCHEDULE_FIELDS:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
    session = update_session(db, booking, session_id, payload)
    return BookingSessionResponse.model_validate(session)
