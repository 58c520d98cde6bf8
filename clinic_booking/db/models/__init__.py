from clinic_booking.db.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingSource, BookingStatus
from clinic_booking.db.models.booking_session import OPEN_SESSION_STATUSES, BookingSession, SessionStatus
from clinic_booking.db.models.doctor import Doctor
from clinic_booking.db.models.profile import Profile, ProfileRole
from clinic_booking.db.models.service import Service

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "Booking",
    "BookingSession",
    "BookingSource",
    "BookingStatus",
    "Doctor",
    "OPEN_SESSION_STATUSES",
    "Profile",
    "ProfileRole",
    "Service",
    "SessionStatus",
]
