from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_booking.api.deps import get_current_user, require_roles
from clinic_booking.api.pagination import LimitParam, OffsetParam
from clinic_booking.db.models import Profile, ProfileRole
from clinic_booking.db.session import get_db
from clinic_booking.schemas.profile import ProfileResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=ProfileResponse, status_code=status.HTTP_200_OK)
def get_me(current_user: Profile = Depends(get_current_user)) -> ProfileResponse:
    return ProfileResponse.model_validate(current_user)


@router.get("", response_model=list[ProfileResponse], status_code=status.HTTP_200_OK)
def list_users(
    _: Profile = Depends(require_roles(ProfileRole.ADMIN)),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    db: Session = Depends(get_db),
) -> list[ProfileResponse]:
    profiles = db.scalars(select(Profile).order_by(Profile.id).limit(limit).offset(offset)).all()
    return [ProfileResponse.model_validate(profile) for profile in profiles]
