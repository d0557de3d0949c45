"""
Exception hierarchy for the disposition core.

Every fatal error raised by the lifecycle, linking and validation services is a
``DispositionError``. Each kind carries a ``category`` (used by the API layer to
pick a status code) and a ``user_message`` that is safe to show to end users.
Internal store details stay on the exception for logging only.

Usage:
    from dispositions.core.exceptions import ValidationError, ReferenceNotFoundError

    raise ValidationError(MESSAGES["EMPTY_INSTRUCTION_TEXT"], field="instruction_text")
    raise ReferenceNotFoundError("User", ["u9", "u12"])
"""
from typing import Iterable, Optional, Union


MESSAGES = {
    # Validation
    "REQUIRED_FIELD": "Field {field} is required",
    "INVALID_STATUS": "Invalid status: {status}",
    "EMPTY_INSTRUCTION_TEXT": "Instruction text must not be empty",
    "NO_ASSIGNEES": "At least one assignee must be selected",
    "SINGLE_DELEGATE": "Delegation targets exactly one new assignee; use create for several",
    "COMPLETION_REQUIRES_REPORT": "A report must be attached before the disposition can be completed",
    "REPORT_NOT_FOUND": "Report {attachment_id} not found on this disposition",
    "ACTIVITY_LINKED_ELSEWHERE": "Activity {activity_id} is already linked to letter {letter_id}",
    "LINK_NOT_FOUND": "Letter {letter_id} is not linked to activity {activity_id}",

    # References
    "REFERENCE_NOT_FOUND": "{entity_type} with ID {entity_id} not found",

    # Authorization
    "LOGIN_REQUIRED": "You must be logged in to perform this action",
    "UPDATE_DENIED": "You do not have permission to update this disposition",
    "DELETE_DENIED": (
        "You do not have permission to delete this disposition. "
        "Only the creator or a Super Admin can delete dispositions."
    ),
    "DELEGATE_DENIED": (
        "You do not have permission to delegate this disposition. "
        "Only the assignee, a Supervisor or a Super Admin can delegate."
    ),
    "LINK_DENIED": "Only a Supervisor or Super Admin can link or unlink letters and activities",
    "VIEW_DENIED": "You do not have permission to view this disposition",
    "JOB_DENIED": "Only a Supervisor or Super Admin can run scheduled jobs",

    # Database
    "DATABASE_UNAVAILABLE": "The database could not be reached. Please try again.",
    "DATABASE_TIMEOUT": "The database timed out. Please try again.",
    "DATABASE_CONFLICT": "The operation conflicts with existing data",
    "ALL_ASSIGNEES_FAILED": "Failed to create a disposition for any assignee",

    # Files
    "FILE_TOO_LARGE": "File exceeds the maximum size of {max_mb}MB",
    "INVALID_FILE_TYPE": "File type not allowed. Allowed extensions: {allowed}",
    "FILE_UPLOAD_FAILED": "File upload failed. Please try again.",

    # Notifications
    "NOTIFICATION_FAILED": "Failed to create notification",
}


class DispositionError(Exception):
    """Base class for every error the disposition core raises on purpose."""

    category = "error"

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        self.message = message
        self.user_message = user_message or message
        super().__init__(message)


class ValidationError(DispositionError):
    """Malformed or missing required input. Surfaced verbatim, never retried."""

    category = "validation"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)


class AuthorizationError(DispositionError):
    """The actor lacks permission for the requested mutation."""

    category = "authorization"

    def __init__(self, message: str, required_role: Optional[str] = None) -> None:
        self.required_role = required_role
        super().__init__(message)


class ReferenceNotFoundError(DispositionError):
    """
    A referenced Letter, Activity, User or Disposition does not exist.

    Kept apart from ValidationError so callers can render "X not found"
    rather than "invalid input". ``entity_ids`` lists every missing id.
    """

    category = "reference"

    def __init__(self, entity_type: str, entity_ids: Union[str, Iterable[str]]) -> None:
        if isinstance(entity_ids, str):
            entity_ids = [entity_ids]
        self.entity_type = entity_type
        self.entity_ids = list(entity_ids)
        super().__init__(
            MESSAGES["REFERENCE_NOT_FOUND"].format(
                entity_type=entity_type, entity_id=", ".join(self.entity_ids)
            )
        )


class DatabaseError(DispositionError):
    """Store failure. The internal cause is kept for logs, never shown."""

    category = "database"

    def __init__(self, message: str, original: Optional[BaseException] = None) -> None:
        self.original = original
        super().__init__(message, user_message=MESSAGES["DATABASE_UNAVAILABLE"])


class FileUploadError(DispositionError):
    """Object-store write/delete failure during report handling."""

    category = "file_upload"

    def __init__(self, message: str, file_name: Optional[str] = None) -> None:
        self.file_name = file_name
        super().__init__(message)


class NotificationError(DispositionError):
    """Notification could not be recorded. Always caught at the call site."""

    category = "notification"

    def __init__(self, message: str, user_id: Optional[str] = None) -> None:
        self.user_id = user_id
        super().__init__(message, user_message=MESSAGES["NOTIFICATION_FAILED"])
