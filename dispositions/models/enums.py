"""Enums for the disposition system - these define the valid values for states, roles and actions."""
from enum import Enum


class DispositionStatus(str, Enum):
    """The four states a Disposition can be in. Any state may move to any other."""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Role(str, Enum):
    """Closed set of actor roles. Only the authorization guard inspects these."""
    STAFF = "Staff"
    SUPERVISOR = "Supervisor"
    SUPER_ADMIN = "Super Admin"


class HistoryAction(str, Enum):
    """Field-level changes recorded in the disposition audit trail."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNEE_ADDED = "assignee_added"
    ASSIGNEE_REMOVED = "assignee_removed"
    REASSIGNED = "reassigned"
    TEXT_UPDATED = "text_updated"
    REPORT_UPLOADED = "laporan_uploaded"
    REPORT_DELETED = "laporan_deleted"
    NOTES_UPDATED = "notes_updated"
    DEADLINE_CHANGED = "deadline_changed"


class NotificationType(str, Enum):
    """Kinds of notification the core triggers."""
    ASSIGNMENT = "assignment"
    UPDATE = "update"
    DEADLINE = "deadline"
