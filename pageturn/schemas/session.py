import datetime as dt

from pydantic import BaseModel, ConfigDict, Field

from pageturn.schemas.progress import ProgressResponse


class StatusUpdateRequest(BaseModel):
    status: str
    rating: int | None = Field(None, ge=1, le=5, description="Omit to keep, null to clear")
    review: str | None = None
    started_date: dt.date | None = None
    completed_date: dt.date | None = None
    confirm_archive: bool = False


class DnfRequest(BaseModel):
    rating: int | None = Field(None, ge=1, le=5, description="Omit to keep, null to clear")
    review: str | None = None
    dnf_date: dt.date | None = None  # defaults to the last progress date, then today


class SessionDatesUpdate(BaseModel):
    started_date: dt.date | None = None
    completed_date: dt.date | None = None


class ReadNextOrderRequest(BaseModel):
    session_ids: list[int]


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    user_id: int | None
    session_number: int
    status: str
    started_date: dt.date | None
    completed_date: dt.date | None
    dnf_date: dt.date | None
    rating: int | None
    review: str | None
    is_active: bool
    read_next_order: int | None
    created_at: dt.datetime
    updated_at: dt.datetime


class StatusUpdateResponse(BaseModel):
    session: SessionResponse
    session_archived: bool
    archived_session_number: int | None = None
    completion_entry: ProgressResponse | None = None


class DnfResponse(BaseModel):
    session: SessionResponse
    last_progress: ProgressResponse | None = None
    rating_updated: bool
    review_updated: bool


class SessionSummaryResponse(SessionResponse):
    total_entries: int = 0
    total_pages_read: int = 0
    first_progress_date: dt.date | None = None
    last_progress_date: dt.date | None = None
    latest_progress: ProgressResponse | None = None
