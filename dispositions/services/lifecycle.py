"""
Disposition lifecycle manager - the state machine every disposition mutation goes through.

Status may move between any of Pending / In Progress / Completed / Cancelled,
with two rules on entering Completed:
- reports must be non-empty at the moment of the transition
- completed_at / completed_by are stamped, and kept if the status later moves on

Every successful mutation writes its history entry through the audit recorder.
Notifications are queued as post-commit hooks and can never fail the call.
"""
from dataclasses import dataclass, field
from datetime import date
from pathlib import PurePath
import time
from typing import Iterable, List, Optional, Sequence, Union

import structlog
from sqlalchemy.orm import Session

from dispositions.config import get_settings
from dispositions.core.exceptions import (
    MESSAGES,
    AuthorizationError,
    DatabaseError,
    DispositionError,
    FileUploadError,
    ReferenceNotFoundError,
    ValidationError,
)
from dispositions.core.retry import handle_database_operation
from dispositions.database import utcnow
from dispositions.models.attachment import Attachment
from dispositions.models.audit import DispositionHistory
from dispositions.models.domain import Disposition
from dispositions.models.enums import DispositionStatus, HistoryAction
from dispositions.services.audit import AuditTrailRecorder
from dispositions.services.authorization import (
    Actor,
    require_create,
    require_delegate,
    require_delete,
    require_update,
    require_view,
    visible_dispositions,
)
from dispositions.services.notifications import NotificationDispatcher, run_post_commit
from dispositions.services.references import ReferenceValidator
from dispositions.services.storage import ObjectStore, remove_blobs_best_effort

logger = structlog.get_logger(__name__)

NO_DEADLINE = "No deadline"

ALLOWED_REPORT_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/jpg",
    "image/png",
})
ALLOWED_REPORT_EXTENSIONS = (".pdf", ".doc", ".docx", ".xls", ".xlsx", ".jpg", ".jpeg", ".png")


@dataclass
class CreateResult:
    """Outcome of a multi-assignee create: some assignees may have failed."""
    created: List[Disposition] = field(default_factory=list)
    failed_assignees: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.created) and bool(self.failed_assignees)


def deadline_value(deadline: Optional[date]) -> str:
    """History representation of a deadline; an unset one is the literal 'No deadline'."""
    return deadline.isoformat() if deadline else NO_DEADLINE


def require_instruction_text(text: Optional[str]) -> str:
    if text is None or not text.strip():
        raise ValidationError(MESSAGES["EMPTY_INSTRUCTION_TEXT"], field="instruction_text")
    return text.strip()


def coerce_status(status: Union[DispositionStatus, str]) -> DispositionStatus:
    try:
        return DispositionStatus(status)
    except ValueError:
        raise ValidationError(MESSAGES["INVALID_STATUS"].format(status=status), field="status")


def validate_report_file(file_name: str, byte_size: int, mime_type: Optional[str]) -> None:
    """Size and type checks run before anything is written to the object store."""
    max_mb = get_settings().max_report_size_mb
    if byte_size > max_mb * 1024 * 1024:
        raise FileUploadError(MESSAGES["FILE_TOO_LARGE"].format(max_mb=max_mb), file_name)

    extension = PurePath(file_name).suffix.lower()
    if mime_type not in ALLOWED_REPORT_TYPES and extension not in ALLOWED_REPORT_EXTENSIONS:
        raise FileUploadError(
            MESSAGES["INVALID_FILE_TYPE"].format(allowed=", ".join(ALLOWED_REPORT_EXTENSIONS)),
            file_name,
        )


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class DispositionLifecycle:
    """Owns create / status / notes / deadline / delegate / delete / report operations."""

    def __init__(
        self,
        db: Session,
        store: ObjectStore,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.store = store
        self.references = ReferenceValidator(db)
        self.audit = AuditTrailRecorder(db)
        self.notifications = dispatcher or NotificationDispatcher(db)

    # ── Reads ─────────────────────────────────────────────────────────────

    def get(self, disposition_id: str) -> Disposition:
        disposition = handle_database_operation(
            self.db, lambda: self.db.get(Disposition, disposition_id), "get disposition"
        )
        if disposition is None:
            raise ReferenceNotFoundError("Disposition", disposition_id)
        return disposition

    def history(self, disposition_id: str) -> List[DispositionHistory]:
        """Audit trail for a disposition, newest first. Works for deleted ones too."""
        return self.audit.history(disposition_id)

    def get_visible(self, disposition_id: str, actor: Optional[Actor]) -> Disposition:
        """Load a disposition, applying the same role-based read filter as the list."""
        disposition = self.get(disposition_id)
        require_view(actor, disposition, self._team(actor))
        return disposition

    def history_for(self, disposition_id: str, actor: Optional[Actor]) -> List[DispositionHistory]:
        """
        History as seen by ``actor``.

        While the row exists the read filter applies. Once it is deleted, an
        elevated actor or anyone who wrote an entry in the trail may still read it.
        """
        disposition = handle_database_operation(
            self.db, lambda: self.db.get(Disposition, disposition_id), "history_for"
        )
        if disposition is not None:
            require_view(actor, disposition, self._team(actor))
            return self.history(disposition_id)

        if actor is None:
            raise AuthorizationError(MESSAGES["LOGIN_REQUIRED"])
        entries = self.history(disposition_id)
        if entries and not actor.is_elevated and all(e.performed_by != actor.id for e in entries):
            raise AuthorizationError(MESSAGES["VIEW_DENIED"])
        return entries

    def list_for_link(self, letter_id: str, activity_id: str) -> List[Disposition]:
        return handle_database_operation(
            self.db,
            lambda: (
                self.db.query(Disposition)
                .filter(Disposition.letter_id == letter_id, Disposition.activity_id == activity_id)
                .order_by(Disposition.created_at.desc())
                .all()
            ),
            "list_for_link",
        )

    def list_for_letter(self, letter_id: str) -> List[Disposition]:
        return handle_database_operation(
            self.db,
            lambda: self.db.query(Disposition).filter(Disposition.letter_id == letter_id).all(),
            "list_for_letter",
        )

    def list_for_activity(self, activity_id: str) -> List[Disposition]:
        return handle_database_operation(
            self.db,
            lambda: self.db.query(Disposition).filter(Disposition.activity_id == activity_id).all(),
            "list_for_activity",
        )

    def all_completed(self, letter_id: str, activity_id: str) -> bool:
        """True iff the pair has at least one disposition and every one is Completed."""
        dispositions = self.list_for_link(letter_id, activity_id)
        if not dispositions:
            return False
        return all(d.status == DispositionStatus.COMPLETED for d in dispositions)

    def list_visible(self, actor: Optional[Actor]) -> List[Disposition]:
        if actor is None:
            return []
        everything = handle_database_operation(
            self.db,
            lambda: self.db.query(Disposition).order_by(Disposition.created_at.desc()).all(),
            "list_visible",
        )
        return visible_dispositions(actor, everything, self.references.team_user_ids(actor))

    def _team(self, actor: Optional[Actor]) -> List[str]:
        return self.references.team_user_ids(actor) if actor is not None else []

    # ── Create ────────────────────────────────────────────────────────────

    def create(
        self,
        letter_id: str,
        activity_id: str,
        assignees: Sequence[str],
        instruction_text: str,
        deadline: Optional[date] = None,
        created_by: Optional[str] = None,
        *,
        actor: Optional[Actor],
    ) -> CreateResult:
        """
        Create one Pending disposition per assignee.

        This is not all-or-nothing. Assignees are processed in
        order; when one fails reference validation or insertion, the ones
        before it stay committed and it and every later assignee are reported
        in ``failed_assignees``. Raises only when nothing was created.
        """
        require_create(actor)
        if not assignees:
            raise ValidationError(MESSAGES["NO_ASSIGNEES"], field="assignees")
        text = require_instruction_text(instruction_text)
        for name, value in (("letter_id", letter_id), ("activity_id", activity_id)):
            if not value:
                raise ValidationError(MESSAGES["REQUIRED_FIELD"].format(field=name), field=name)

        self.references.require_link_references(letter_id, activity_id)
        created_by = created_by or actor.id

        ordered = _unique(assignees)
        result = CreateResult()
        missing_users = []
        for index, assignee in enumerate(ordered):
            try:
                self.references.require_user(assignee)
                disposition = self._insert(letter_id, activity_id, assignee, text, deadline, created_by)
            except (ReferenceNotFoundError, DatabaseError) as exc:
                if isinstance(exc, ReferenceNotFoundError):
                    missing_users.append(assignee)
                result.failed_assignees = ordered[index:]
                logger.warning(
                    "disposition_create_stopped",
                    letter_id=letter_id,
                    activity_id=activity_id,
                    failed_assignee=assignee,
                    skipped=ordered[index + 1:],
                    error=exc.message,
                )
                break

            result.created.append(disposition)
            self.audit.record(
                disposition.id,
                HistoryAction.CREATED,
                None,
                f"Disposition created for {assignee}",
                actor.id,
            )

        if not result.created:
            if missing_users:
                raise ReferenceNotFoundError("User", missing_users)
            raise DatabaseError(MESSAGES["ALL_ASSIGNEES_FAILED"])

        logger.info(
            "dispositions_created",
            letter_id=letter_id,
            activity_id=activity_id,
            created=len(result.created),
            failed=len(result.failed_assignees),
        )
        run_post_commit(
            [
                self._assignment_hook(disposition, actor)
                for disposition in result.created
                if disposition.assigned_to != actor.id
            ],
            context="create",
        )
        return result

    def _insert(
        self,
        letter_id: str,
        activity_id: str,
        assignee: str,
        text: str,
        deadline: Optional[date],
        created_by: str,
    ) -> Disposition:
        def _persist():
            disposition = Disposition(
                letter_id=letter_id,
                activity_id=activity_id,
                assigned_to=assignee,
                instruction_text=text,
                status=DispositionStatus.PENDING,
                deadline=deadline,
                reports=[],
                attachments=[],
                created_by=created_by,
                created_at=utcnow(),
            )
            self.db.add(disposition)
            self.db.commit()
            return disposition

        return handle_database_operation(self.db, _persist, "create disposition")

    # ── Status / notes / deadline ─────────────────────────────────────────

    def update_status(
        self,
        disposition_id: str,
        new_status: Union[DispositionStatus, str],
        actor: Optional[Actor],
    ) -> Disposition:
        disposition = self.get(disposition_id)
        require_update(actor, disposition.assigned_to, disposition.created_by)
        status = coerce_status(new_status)

        if status == DispositionStatus.COMPLETED and not disposition.reports:
            raise ValidationError(MESSAGES["COMPLETION_REQUIRES_REPORT"], field="reports")

        old_status = disposition.status

        def _persist():
            now = utcnow()
            disposition.status = status
            disposition.updated_at = now
            if status == DispositionStatus.COMPLETED:
                disposition.completed_at = now
                disposition.completed_by = actor.id
            self.db.commit()

        handle_database_operation(self.db, _persist, "update_status")
        self.audit.record(
            disposition.id, HistoryAction.STATUS_CHANGED, old_status.value, status.value, actor.id
        )
        logger.info(
            "disposition_status_changed",
            disposition_id=disposition.id,
            old_status=old_status.value,
            new_status=status.value,
            actor_id=actor.id,
        )

        if actor.id != disposition.assigned_to and old_status != status:
            change = f'status changed from "{old_status.value}" to "{status.value}"'
            run_post_commit(
                [lambda: self.notifications.notify_update(disposition, actor.name, change)],
                context="update_status",
            )
        return disposition

    def update_notes(self, disposition_id: str, notes: Optional[str], actor: Optional[Actor]) -> Disposition:
        disposition = self.get(disposition_id)
        require_update(actor, disposition.assigned_to, disposition.created_by)
        old_notes = disposition.notes or ""

        def _persist():
            disposition.notes = notes
            disposition.updated_at = utcnow()
            self.db.commit()

        handle_database_operation(self.db, _persist, "update_notes")
        self.audit.record(disposition.id, HistoryAction.NOTES_UPDATED, old_notes, notes or "", actor.id)
        return disposition

    def update_deadline(
        self, disposition_id: str, deadline: Optional[date], actor: Optional[Actor]
    ) -> Disposition:
        disposition = self.get(disposition_id)
        require_update(actor, disposition.assigned_to, disposition.created_by)
        old_deadline = disposition.deadline

        def _persist():
            disposition.deadline = deadline
            disposition.updated_at = utcnow()
            self.db.commit()

        handle_database_operation(self.db, _persist, "update_deadline")
        self.audit.record(
            disposition.id,
            HistoryAction.DEADLINE_CHANGED,
            deadline_value(old_deadline),
            deadline_value(deadline),
            actor.id,
        )
        return disposition

    # ── Delegation ────────────────────────────────────────────────────────

    def delegate(
        self,
        disposition_id: str,
        new_assignee: str,
        instruction_text: str,
        deadline: Optional[date] = None,
        notes: Optional[str] = None,
        *,
        actor: Optional[Actor],
    ) -> Disposition:
        """
        Hand the disposition on to exactly one new assignee, in place.

        No new row is created. The previous assignee, text and deadline
        survive only as history entries, written in the order
        reassigned -> text_updated -> deadline_changed before the row changes.
        """
        disposition = self.get(disposition_id)
        require_delegate(actor, disposition.assigned_to)

        if not isinstance(new_assignee, str):
            raise ValidationError(MESSAGES["SINGLE_DELEGATE"], field="new_assignee")
        if not new_assignee:
            raise ValidationError(MESSAGES["REQUIRED_FIELD"].format(field="new_assignee"), field="new_assignee")
        text = require_instruction_text(instruction_text)
        self.references.require_user(new_assignee)

        old_assignee = disposition.assigned_to
        old_text = disposition.instruction_text
        old_deadline = disposition.deadline

        self.audit.record(disposition.id, HistoryAction.REASSIGNED, old_assignee, new_assignee, actor.id)
        if text != old_text:
            self.audit.record(disposition.id, HistoryAction.TEXT_UPDATED, old_text, text, actor.id)
        if deadline != old_deadline:
            self.audit.record(
                disposition.id,
                HistoryAction.DEADLINE_CHANGED,
                deadline_value(old_deadline),
                deadline_value(deadline),
                actor.id,
            )

        def _persist():
            disposition.assigned_to = new_assignee
            disposition.instruction_text = text
            disposition.deadline = deadline
            if notes is not None:
                disposition.notes = notes
            disposition.updated_at = utcnow()
            self.db.commit()

        handle_database_operation(self.db, _persist, "delegate")
        logger.info(
            "disposition_delegated",
            disposition_id=disposition.id,
            old_assignee=old_assignee,
            new_assignee=new_assignee,
            actor_id=actor.id,
        )

        if new_assignee != actor.id:
            run_post_commit([self._assignment_hook(disposition, actor)], context="delegate")
        return disposition

    # ── Delete ────────────────────────────────────────────────────────────

    def delete(self, disposition_id: str, actor: Optional[Actor]) -> None:
        """
        Hard-delete a disposition.

        The removal is audited first; that history entry outlives the row.
        Owned blobs are cleaned up before the row goes.
        """
        disposition = self.get(disposition_id)
        require_delete(actor, disposition.created_by)

        blob_paths = disposition.blob_paths()
        self.audit.record(
            disposition.id, HistoryAction.ASSIGNEE_REMOVED, disposition.assigned_to, "deleted", actor.id
        )
        remove_blobs_best_effort(self.store, blob_paths, context="delete")

        def _persist():
            self.db.delete(disposition)
            self.db.commit()

        handle_database_operation(self.db, _persist, "delete")
        logger.info("disposition_deleted", disposition_id=disposition_id, actor_id=actor.id)

    # ── Reports ───────────────────────────────────────────────────────────

    def attach_report(self, disposition_id: str, attachment: Attachment, actor: Optional[Actor]) -> Attachment:
        disposition = self.get(disposition_id)
        require_update(actor, disposition.assigned_to, disposition.created_by)

        def _persist():
            disposition.reports = [*(disposition.reports or []), attachment.to_dict()]
            disposition.updated_at = utcnow()
            self.db.commit()

        handle_database_operation(self.db, _persist, "attach_report")
        self.audit.record(disposition.id, HistoryAction.REPORT_UPLOADED, None, attachment.name, actor.id)
        return attachment

    def upload_report(
        self,
        disposition_id: str,
        file_name: str,
        content: bytes,
        mime_type: Optional[str],
        actor: Optional[Actor],
    ) -> Attachment:
        """
        Store a report file and attach it. If anything after the upload fails,
        the written blob is removed again before the error propagates.
        """
        disposition = self.get(disposition_id)
        require_update(actor, disposition.assigned_to, disposition.created_by)
        validate_report_file(file_name, len(content), mime_type)

        extension = PurePath(file_name).suffix.lower()
        path = f"reports/{disposition.id}_{int(time.time() * 1000)}{extension}"
        try:
            url = self.store.upload(path, content, mime_type)
        except Exception as exc:
            remove_blobs_best_effort(self.store, [path], context="upload_report")
            raise FileUploadError(MESSAGES["FILE_UPLOAD_FAILED"], file_name) from exc

        attachment = Attachment(
            name=file_name,
            byte_size=len(content),
            mime_type=mime_type or "",
            storage_path=path,
            url=url,
        )
        try:
            return self.attach_report(disposition.id, attachment, actor)
        except DispositionError:
            remove_blobs_best_effort(self.store, [path], context="upload_report")
            raise

    def remove_report(self, disposition_id: str, attachment_id: str, actor: Optional[Actor]) -> Attachment:
        """
        Drop a report from the list. Deleting its blob is best-effort: a storage
        failure is logged and neither the list change nor the audit entry is undone.
        """
        disposition = self.get(disposition_id)
        require_update(actor, disposition.assigned_to, disposition.created_by)

        target = next((a for a in disposition.report_list() if a.id == attachment_id), None)
        if target is None:
            raise ValidationError(
                MESSAGES["REPORT_NOT_FOUND"].format(attachment_id=attachment_id), field="attachment_id"
            )

        def _persist():
            disposition.reports = [item for item in (disposition.reports or []) if item["id"] != attachment_id]
            disposition.updated_at = utcnow()
            self.db.commit()

        handle_database_operation(self.db, _persist, "remove_report")
        self.audit.record(disposition.id, HistoryAction.REPORT_DELETED, target.name, None, actor.id)

        if target.has_blob:
            remove_blobs_best_effort(self.store, [target.storage_path], context="remove_report")
        return target

    # ── Hooks ─────────────────────────────────────────────────────────────

    def _assignment_hook(self, disposition: Disposition, actor: Actor):
        return lambda: self.notifications.notify_assignment(disposition, actor.name)
