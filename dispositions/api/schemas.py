"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from dispositions.models.enums import DispositionStatus, HistoryAction, NotificationType


# Attachment schemas
class AttachmentResponse(BaseModel):
    id: str
    name: str
    byte_size: int = 0
    mime_type: str = ""
    storage_path: str = ""
    url: Optional[str] = None
    is_link: bool = False


class ReportLinkCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)


# Disposition schemas
class DispositionCreate(BaseModel):
    letter_id: str = Field(..., min_length=1)
    activity_id: str = Field(..., min_length=1)
    assignees: List[str]
    instruction_text: str
    deadline: Optional[date] = None
    created_by: Optional[str] = None


class DispositionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    letter_id: str
    activity_id: str
    assigned_to: str
    instruction_text: str
    status: DispositionStatus
    deadline: Optional[date]
    reports: List[AttachmentResponse]
    attachments: List[AttachmentResponse]
    notes: Optional[str]
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime]
    completed_at: Optional[datetime]
    completed_by: Optional[str]
    parent_disposition_id: Optional[str]


class CreateResultResponse(BaseModel):
    created: List[DispositionResponse]
    failed_assignees: List[str]


class StatusUpdate(BaseModel):
    # Free-form so an unknown status reaches the lifecycle and gets its message
    status: str


class NotesUpdate(BaseModel):
    notes: Optional[str] = None


class DeadlineUpdate(BaseModel):
    deadline: Optional[date] = None


class DelegateRequest(BaseModel):
    new_assignee: str
    instruction_text: str
    deadline: Optional[date] = None
    notes: Optional[str] = None


# Link schemas
class LinkCreate(BaseModel):
    letter_id: str = Field(..., min_length=1)
    activity_id: str = Field(..., min_length=1)
    assignees: List[str]
    instruction_text: str
    deadline: Optional[date] = None
    created_by: Optional[str] = None


class LinkResponse(BaseModel):
    letter_id: str
    activity_id: str
    disposition_ids: List[str]


class UnlinkResponse(BaseModel):
    letter_id: str
    activity_id: str
    removed: int


class LinkDispositionsResponse(BaseModel):
    letter_id: str
    activity_id: str
    all_completed: bool
    dispositions: List[DispositionResponse]


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    date: Optional[dt.date]
    linked_letter_id: Optional[str]
    letter_type: Optional[str]
    letter_number: Optional[str]
    letter_date: Optional[dt.date]
    subject: Optional[str]
    sender: Optional[str]
    recipient: Optional[str]
    classification: Optional[str]
    document_type: Optional[str]
    field_of_duty: Optional[str]
    updated_at: Optional[datetime]


# History schemas
class HistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    disposition_id: str
    action: HistoryAction
    old_value: Optional[str]
    new_value: Optional[str]
    performed_by: str
    performed_at: datetime


# Notification schemas
class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    disposition_id: Optional[str]
    activity_id: Optional[str]
    created_at: datetime


class DeadlineSweepResponse(BaseModel):
    sent: int
    notifications: List[NotificationResponse]


class ErrorBody(BaseModel):
    type: str
    message: str
    field: Optional[str] = None
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    error: ErrorBody
