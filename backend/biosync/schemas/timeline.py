from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, field_validator, model_validator

from biosync.core.enums import SortOrder, TimelineCategory


class TimelineEvent(BaseModel):
    id: str
    date: dt.date
    category: TimelineCategory
    title: str
    summary: str = ""
    notes: str | None = None
    file_name: str | None = None
    file_data: str | None = None
    last_modified: str | None = None

    @field_validator("file_name", "file_data")
    @classmethod
    def _blank_is_absent(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _attachment_is_complete(self) -> "TimelineEvent":
        if (self.file_name is None) != (self.file_data is None):
            raise ValueError("file_name and file_data must be provided together")
        return self


class TimelineEventDraft(BaseModel):
    """Editable fields of an event; anything left unset keeps its current value."""

    date: dt.date | None = None
    category: TimelineCategory | None = None
    title: str | None = Field(default=None, max_length=200)
    summary: str | None = Field(default=None, max_length=2000)
    notes: str | None = Field(default=None, max_length=4000)
    file_name: str | None = Field(default=None, max_length=255)
    file_data: str | None = None


class TimelineMutationResponse(BaseModel):
    event: TimelineEvent | None = None
    last_sync: str | None = None
    persisted: bool = True


class TimelineRead(BaseModel):
    events: list[TimelineEvent]
    total: int
    category: str
    search: str
    sort: SortOrder
    last_sync: str | None = None


class SortOrderUpdate(BaseModel):
    sort: SortOrder


class AttachmentRead(BaseModel):
    file_name: str
    file_data: str
    content_type: str
    kind: str
    byte_size: int
