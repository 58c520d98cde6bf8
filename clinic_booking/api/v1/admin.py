from itertools import groupby

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_booking.api.deps import require_roles
from clinic_booking.api.pagination import PageParam, PageSizeParam
from clinic_booking.core.cache import BOOKINGS_CACHE_PREFIX, booking_cache
from clinic_booking.db.models import Booking, Profile, ProfileRole
from clinic_booking.db.session import get_db
from clinic_booking.schemas.booking import (
    AdminBookingCreateRequest,
    BookingResponse,
    BookingStatusUpdateRequest,
    DoctorSlotsResponse,
    SlotSearchDayResponse,
)
from clinic_booking.schemas.booking_session import SessionAutoCompleteResponse
from clinic_booking.services.availability_service import search_available_slots
from clinic_booking.services.booking_service import (
    change_booking_status,
    create_admin_booking,
    list_bookings_page,
)
from clinic_booking.services.datetime_normalizer import format_clock_label, to_time
from clinic_booking.services.session_service import auto_complete_sessions

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_roles(ProfileRole.ADMIN)


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking_for_customer(
    payload: AdminBookingCreateRequest,
    _: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = create_admin_booking(db=db, payload=payload)
    return BookingResponse.model_validate(booking)


@router.get("/bookings", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
def list_all_bookings(
    page: PageParam = 1,
    page_size: PageSizeParam = 20,
    _: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[dict]:
    return list_bookings_page(db=db, page=page, page_size=page_size)


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse, status_code=status.HTTP_200_OK)
def update_booking_status(
    booking_id: int,
    payload: BookingStatusUpdateRequest,
    _: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = db.scalar(select(Booking).where(Booking.id == booking_id))
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    booking = change_booking_status(db=db, booking=booking, new_status=payload.status)
    return BookingResponse.model_validate(booking)


@router.get("/available-timeslots", response_model=list[SlotSearchDayResponse], status_code=status.HTTP_200_OK)
def search_timeslots(
    service_id: int = Query(),
    date_from: str = Query(min_length=1, max_length=60),
    date_to: str | None = Query(default=None, max_length=60),
    doctor_ids: list[int] | None = Query(default=None, alias="doctor_id"),
    start_time: str | None = Query(default=None, max_length=20),
    end_time: str | None = Query(default=None, max_length=20),
    _: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[SlotSearchDayResponse]:
    found = search_available_slots(
        db=db,
        service_id=service_id,
        raw_date_from=date_from,
        raw_date_to=date_to,
        doctor_ids=doctor_ids,
        raw_window_start=start_time,
        raw_window_end=end_time,
    )
    return [
        SlotSearchDayResponse(
            date=day,
            doctors=[
                DoctorSlotsResponse(
                    doctor_id=item.doctor_id,
                    doctor_name=item.doctor_name,
                    slots=item.slots,
                    labels=[format_clock_label(to_time(slot)) for slot in item.slots],
                )
                for item in items
            ],
        )
        for day, items in groupby(found, key=lambda item: item.booking_date)
    ]


@router.post("/sessions/auto-complete", response_model=SessionAutoCompleteResponse, status_code=status.HTTP_200_OK)
def complete_past_sessions(
    dry_run: bool = False,
    max_age_days: int = Query(default=60, ge=1, le=365),
    _: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
) -> SessionAutoCompleteResponse:
    result = auto_complete_sessions(db=db, max_age_days=max_age_days, dry_run=dry_run)
    return SessionAutoCompleteResponse(updated=result.updated, skipped=result.skipped)


@router.post("/cache/clear", status_code=status.HTTP_200_OK)
def clear_bookings_cache(_: Profile = Depends(require_admin)) -> dict[str, int]:
    removed = booking_cache.invalidate_prefix(BOOKINGS_CACHE_PREFIX)
    return {"cleared": removed}
