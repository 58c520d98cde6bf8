from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_booking.api.deps import get_current_user, get_owned_booking, require_roles
from clinic_booking.api.pagination import LimitParam, OffsetParam
from clinic_booking.db.models import Booking, BookingStatus, Profile, ProfileRole
from clinic_booking.db.session import get_db
from clinic_booking.schemas.booking import BookingCreateRequest, BookingRescheduleRequest, BookingResponse
from clinic_booking.services.booking_service import (
    change_booking_status,
    create_customer_booking,
    reschedule_booking,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreateRequest,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
    current_user: Profile = Depends(require_roles(ProfileRole.CUSTOMER, ProfileRole.ADMIN)),
    db: Session = Depends(get_db),
) -> BookingResponse:
    normalized_idempotency_key: str | None = None
    if idempotency_key is not None:
        normalized_idempotency_key = idempotency_key.strip()
        if not normalized_idempotency_key:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Idempotency-Key header must not be empty",
            )
        if len(normalized_idempotency_key) > 128:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Idempotency-Key header is too long (max 128 characters)",
            )

    booking = create_customer_booking(
        db=db,
        payload=payload,
        customer=current_user,
        idempotency_key=normalized_idempotency_key,
    )
    return BookingResponse.model_validate(booking)


@router.get("/me", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_my_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    query = select(Booking).where(Booking.customer_id == current_user.id)
    if status_filter:
        query = query.where(Booking.status == status_filter.value)
    if date_from:
        query = query.where(Booking.booking_date >= date_from)
    if date_to:
        query = query.where(Booking.booking_date <= date_to)

    bookings = db.scalars(
        query.order_by(Booking.booking_date, Booking.booking_time, Booking.id).limit(limit).offset(offset)
    ).all()
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def get_booking_by_id(
    booking_id: int,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = get_owned_booking(booking_id, current_user, db)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def cancel_booking(
    booking_id: int,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = get_owned_booking(booking_id, current_user, db)
    booking = change_booking_status(db=db, booking=booking, new_status=BookingStatus.CANCELLED)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/reschedule", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def reschedule_existing_booking(
    booking_id: int,
    payload: BookingRescheduleRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = get_owned_booking(booking_id, current_user, db)
    booking = reschedule_booking(db=db, booking=booking, payload=payload)
    return BookingResponse.model_validate(booking)
