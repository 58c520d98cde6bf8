from datetime import date as date_type, datetime, time as time_type

from pydantic import BaseModel, Field

from clinic_booking.db.models.booking_session import SessionStatus


class SessionCreateItem(BaseModel):
    session_number: int | None = Field(default=None, ge=1, le=10)
    scheduled_date: str | None = Field(default=None, max_length=60)
    scheduled_time: str | None = Field(default=None, max_length=20)
    status: SessionStatus | None = None
    notes: str | None = Field(default=None, max_length=2000)
    expires_at: datetime | None = None


class SessionBulkCreateRequest(BaseModel):
    sessions: list[SessionCreateItem]


class SessionUpdateRequest(BaseModel):
    # fields outside this list are ignored, like any unknown JSON key
    scheduled_date: str | None = Field(default=None, max_length=60)
    scheduled_time: str | None = Field(default=None, max_length=20)
    status: SessionStatus | None = None
    attended_date: str | None = Field(default=None, max_length=60)
    notes: str | None = Field(default=None, max_length=2000)
    expires_at: datetime | None = None


class BookingSessionResponse(BaseModel):
    id: int
    booking_id: int
    session_number: int
    scheduled_date: date_type | None
    scheduled_time: time_type | None
    status: str
    attended_date: date_type | None
    notes: str | None
    expires_at: datetime | None

    model_config = {"from_attributes": True}


class SessionProgressResponse(BaseModel):
    attended: int
    remaining: int
    expired: int
    total: int


class BookingSessionsResponse(BaseModel):
    booking_id: int
    session_count: int
    sessions: list[BookingSessionResponse]
    progress: SessionProgressResponse


class SessionAutoCompleteResponse(BaseModel):
    updated: int
    skipped: int
