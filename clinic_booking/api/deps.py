from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_booking.core.security import decode_access_token
from clinic_booking.db.models import Booking, Profile, ProfileRole
from clinic_booking.db.session import get_db

# tokens are issued by the external identity provider; this URL is informational
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Profile:
    unauthorized_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        profile_id = int(payload.get("sub", ""))
    except (ValueError, TypeError):
        raise unauthorized_exc

    profile = db.scalar(select(Profile).where(Profile.id == profile_id))
    if not profile or not profile.is_active:
        raise unauthorized_exc
    return profile


def require_roles(*roles: ProfileRole | str) -> Callable[[Profile], Profile]:
    allowed_roles = {role.value if isinstance(role, ProfileRole) else role for role in roles}

    def checker(current_user: Profile = Depends(get_current_user)) -> Profile:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return current_user

    return checker


def get_owned_booking(booking_id: int, current_user: Profile, db: Session) -> Booking:
    booking = db.scalar(select(Booking).where(Booking.id == booking_id))
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    is_admin = current_user.role == ProfileRole.ADMIN.value
    if not (is_admin or booking.customer_id == current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
    return booking
