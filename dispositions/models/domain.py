"""Domain models - reference tables plus the Disposition itself."""
import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, JSON, String, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship

from dispositions.database import Base, utcnow
from dispositions.models.attachment import Attachment
from dispositions.models.enums import DispositionStatus, NotificationType, Role


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Reference table. Read-only from the core's perspective."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(SQLEnum(Role), nullable=False, default=Role.STAFF)


class Letter(Base):
    """An incoming/outgoing formal correspondence record. Read-only to the core."""
    __tablename__ = "letters"

    id = Column(String(36), primary_key=True, default=new_id)
    letter_type = Column(String, nullable=True)  # incoming / outgoing
    letter_number = Column(String, nullable=True)
    letter_date = Column(Date, nullable=True)
    subject = Column(String, nullable=True)
    sender = Column(String, nullable=True)
    recipient = Column(String, nullable=True)
    classification = Column(String, nullable=True)
    document_type = Column(String, nullable=True)
    field_of_duty = Column(String, nullable=True)
    letter_file = Column(JSON, nullable=True)  # Attachment dict

    created_at = Column(DateTime, nullable=False, default=utcnow)


class Activity(Base):
    """
    A meeting/agenda item a Letter can be linked to.

    The core writes only ``linked_letter_id`` (through the link procedures) and
    the denormalized letter fields (through metadata copy).
    """
    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    date = Column(Date, nullable=True)
    linked_letter_id = Column(String(36), ForeignKey("letters.id"), nullable=True, index=True)

    # Denormalized copy of the linked letter, for the read path
    letter_type = Column(String, nullable=True)
    letter_number = Column(String, nullable=True)
    letter_date = Column(Date, nullable=True)
    subject = Column(String, nullable=True)
    sender = Column(String, nullable=True)
    recipient = Column(String, nullable=True)
    classification = Column(String, nullable=True)
    document_type = Column(String, nullable=True)
    field_of_duty = Column(String, nullable=True)
    invitation_file = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    linked_letter = relationship("Letter")


class Disposition(Base):
    """
    A single-assignee unit of routed work tied to one Letter-Activity pair.

    Invariants:
    - letter_id, activity_id, created_by and created_at never change
    - exactly one assignee per row; multi-assignee creation fans out into rows
    - status may only become Completed while reports is non-empty
    - completed_at/completed_by record the last completion and are kept afterwards
    - delegation rewrites this row in place; prior state lives only in history
    """
    __tablename__ = "dispositions"

    id = Column(String(36), primary_key=True, default=new_id)
    letter_id = Column(String(36), ForeignKey("letters.id"), nullable=False, index=True)
    activity_id = Column(String(36), ForeignKey("activities.id"), nullable=False, index=True)
    assigned_to = Column(String(36), nullable=False, index=True)
    instruction_text = Column(Text, nullable=False)
    status = Column(SQLEnum(DispositionStatus), nullable=False, default=DispositionStatus.PENDING)
    deadline = Column(Date, nullable=True)

    reports = Column(JSON, nullable=False, default=list)
    attachments = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)

    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String(36), nullable=True)

    # Never maintained as a live back-reference; see delegation in the lifecycle service
    parent_disposition_id = Column(String(36), nullable=True)

    activity = relationship("Activity")

    def report_list(self) -> list:
        return [Attachment.from_dict(item) for item in (self.reports or [])]

    def attachment_list(self) -> list:
        return [Attachment.from_dict(item) for item in (self.attachments or [])]

    def blob_paths(self) -> list:
        """Object-store paths owned by this row (reports and attachments)."""
        return [
            attachment.storage_path
            for attachment in self.report_list() + self.attachment_list()
            if attachment.has_blob
        ]


class Notification(Base):
    """Record written by the notification dispatcher; delivery happens elsewhere."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False, default="")

    disposition_id = Column(String(36), nullable=True, index=True)
    disposition_text = Column(Text, nullable=True)
    activity_id = Column(String(36), nullable=True)
    activity_title = Column(String, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
