from datetime import datetime

from pydantic import BaseModel, EmailStr

from clinic_booking.db.models.profile import ProfileRole


class ProfileResponse(BaseModel):
    id: int
    email: EmailStr
    full_name: str | None
    phone: str | None
    role: ProfileRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
