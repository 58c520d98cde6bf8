from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from clinic_booking.db.session import get_db
from clinic_booking.schemas.booking import AvailableSlotsResponse
from clinic_booking.services.availability_service import get_available_slots
from clinic_booking.services.datetime_normalizer import format_clock_label, to_time

router = APIRouter(tags=["availability"])


@router.get("/available-timeslots", response_model=AvailableSlotsResponse, status_code=status.HTTP_200_OK)
def list_available_timeslots(
    date: str = Query(min_length=1, max_length=60),
    doctor_id: int = Query(),
    service_id: int = Query(),
    db: Session = Depends(get_db),
) -> AvailableSlotsResponse:
    booking_date, slots = get_available_slots(db=db, doctor_id=doctor_id, raw_date=date, service_id=service_id)
    return AvailableSlotsResponse(
        date=booking_date,
        doctor_id=doctor_id,
        service_id=service_id,
        slots=slots,
        labels=[format_clock_label(to_time(slot)) for slot in slots],
    )
