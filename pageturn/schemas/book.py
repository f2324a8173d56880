from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    total_pages: int | None = Field(None, ge=1)


class BookUpdate(BaseModel):
    total_pages: int | None = Field(None, ge=1)


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    total_pages: int | None
    rating: int | None
    created_at: datetime
    updated_at: datetime
