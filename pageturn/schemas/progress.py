import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProgressCreate(BaseModel):
    current_page: int | None = Field(None, ge=0, description="Absolute page reached")
    current_percentage: float | None = Field(None, description="Percent complete, clamped to 0-100")
    progress_date: dt.date | None = None  # defaults to today in the reader's timezone
    notes: str | None = None

    @model_validator(mode="after")
    def require_position(self):
        if self.current_page is None and self.current_percentage is None:
            raise ValueError("Must provide current_page or current_percentage")
        return self


class ProgressUpdate(BaseModel):
    current_page: int | None = Field(None, ge=0)
    current_percentage: float | None = None
    progress_date: dt.date | None = None
    notes: str | None = None


class ProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    session_id: int | None
    current_page: int
    current_percentage: float
    progress_date: dt.date
    notes: str | None
    pages_read: int
    created_at: dt.datetime
