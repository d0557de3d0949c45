"""
Linking coordinator - connects a Letter to an Activity together with its dispositions.

``link`` and ``unlink`` delegate the actual writes to the transactional store
procedures, so a failure anywhere inside leaves either the whole change or none
of it. Everything that happens after the commit (history, metadata copy,
notifications, blob cleanup) is best-effort.
"""
from datetime import date
from typing import List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from dispositions import procedures
from dispositions.core.exceptions import MESSAGES, ReferenceNotFoundError, ValidationError
from dispositions.core.retry import handle_database_operation
from dispositions.database import utcnow
from dispositions.models.domain import Activity, Disposition, Letter
from dispositions.models.enums import HistoryAction
from dispositions.services.audit import AuditTrailRecorder
from dispositions.services.authorization import Actor, require_link
from dispositions.services.lifecycle import require_instruction_text
from dispositions.services.notifications import NotificationDispatcher, run_post_commit
from dispositions.services.references import ReferenceValidator
from dispositions.services.storage import ObjectStore, remove_blobs_best_effort

logger = structlog.get_logger(__name__)

# Letter fields mirrored onto a linked Activity
METADATA_FIELDS = (
    "letter_type",
    "letter_number",
    "letter_date",
    "subject",
    "sender",
    "recipient",
    "classification",
    "document_type",
    "field_of_duty",
)


class LinkingCoordinator:

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

    def validate_link(self, letter_id: str, activity_id: str) -> bool:
        """Non-raising check that both ends of a link exist."""
        return self.references.exists("Letter", letter_id) and self.references.exists("Activity", activity_id)

    def link(
        self,
        letter_id: str,
        activity_id: str,
        assignees: Sequence[str],
        instruction_text: str,
        deadline: Optional[date] = None,
        created_by: Optional[str] = None,
        *,
        actor: Optional[Actor],
    ) -> List[str]:
        """
        Link ``letter_id`` to ``activity_id`` and create one Pending disposition
        per assignee, atomically.

        All validation happens before the transaction opens. Linking a pair
        that is already linked adds dispositions to it; linking an activity
        that belongs to another letter is rejected.

        Returns:
            Ids of the created dispositions
        """
        require_link(actor)
        if not assignees:
            raise ValidationError(MESSAGES["NO_ASSIGNEES"], field="assignees")
        text = require_instruction_text(instruction_text)

        self.references.require_letter(letter_id)
        activity = self._activity(activity_id)
        if activity.linked_letter_id and activity.linked_letter_id != letter_id:
            raise ValidationError(
                MESSAGES["ACTIVITY_LINKED_ELSEWHERE"].format(
                    activity_id=activity_id, letter_id=activity.linked_letter_id
                ),
                field="activity_id",
            )

        ordered = list(dict.fromkeys(assignees))
        self.references.require_users(ordered)

        payload = procedures.DispositionPayload(
            assignees=ordered,
            instruction_text=text,
            created_by=created_by or actor.id,
            deadline=deadline,
        )
        created_ids = handle_database_operation(
            self.db,
            lambda: procedures.link_letter_to_activity(self.db, letter_id, activity_id, payload),
            "link",
        )
        logger.info(
            "letter_linked",
            letter_id=letter_id,
            activity_id=activity_id,
            dispositions=len(created_ids),
            actor_id=actor.id,
        )

        for disposition_id, assignee in zip(created_ids, ordered):
            self.audit.record(
                disposition_id,
                HistoryAction.CREATED,
                None,
                f"Disposition created for {assignee}",
                actor.id,
            )

        hooks = [lambda: self._copy_metadata(letter_id, activity_id)]
        for disposition_id, assignee in zip(created_ids, ordered):
            if assignee != actor.id:
                hooks.append(self._assignment_hook(disposition_id, actor))
        run_post_commit(hooks, context="link")
        return created_ids

    def unlink(self, letter_id: str, activity_id: str, *, actor: Optional[Actor]) -> int:
        """
        Remove the link and every disposition for the pair, atomically.

        The Letter and the Activity rows survive. Blobs owned by the removed
        dispositions are cleaned up after the commit.

        Returns:
            Number of dispositions removed
        """
        require_link(actor)
        activity = self._activity(activity_id)
        doomed = handle_database_operation(
            self.db,
            lambda: [
                (d.id, d.assigned_to, d.blob_paths())
                for d in self.db.query(Disposition)
                .filter(Disposition.letter_id == letter_id, Disposition.activity_id == activity_id)
                .all()
            ],
            "unlink lookup",
        )
        if not doomed and activity.linked_letter_id != letter_id:
            raise ValidationError(
                MESSAGES["LINK_NOT_FOUND"].format(letter_id=letter_id, activity_id=activity_id),
                field="activity_id",
            )

        handle_database_operation(
            self.db,
            lambda: procedures.unlink_letter_from_activity(self.db, letter_id, activity_id),
            "unlink",
        )
        logger.info(
            "letter_unlinked",
            letter_id=letter_id,
            activity_id=activity_id,
            dispositions=len(doomed),
            actor_id=actor.id,
        )

        blob_paths = []
        for disposition_id, assigned_to, paths in doomed:
            self.audit.record(disposition_id, HistoryAction.ASSIGNEE_REMOVED, assigned_to, "unlinked", actor.id)
            blob_paths.extend(paths)
        remove_blobs_best_effort(self.store, blob_paths, context="unlink")
        return len(doomed)

    def copy_metadata(self, letter_id: str, activity_id: str, *, actor: Optional[Actor]) -> Activity:
        """
        Re-sync the descriptive letter fields onto an activity already linked
        to that letter. Same permission as linking.
        """
        require_link(actor)
        activity = self._activity(activity_id)
        if activity.linked_letter_id != letter_id:
            raise ValidationError(
                MESSAGES["LINK_NOT_FOUND"].format(letter_id=letter_id, activity_id=activity_id),
                field="activity_id",
            )
        return self._copy_metadata(letter_id, activity_id)

    def _copy_metadata(self, letter_id: str, activity_id: str) -> Activity:
        """One-way copy of the descriptive letter fields onto the activity. Idempotent."""
        letter = handle_database_operation(self.db, lambda: self.db.get(Letter, letter_id), "copy_metadata")
        if letter is None:
            raise ReferenceNotFoundError("Letter", letter_id)
        activity = self._activity(activity_id)

        def _persist():
            for name in METADATA_FIELDS:
                setattr(activity, name, getattr(letter, name))
            if letter.letter_file:
                activity.invitation_file = letter.letter_file
            activity.updated_at = utcnow()
            self.db.commit()

        handle_database_operation(self.db, _persist, "copy_metadata")
        logger.info("letter_metadata_copied", letter_id=letter_id, activity_id=activity_id)
        return activity

    def _activity(self, activity_id: str) -> Activity:
        activity = handle_database_operation(
            self.db, lambda: self.db.get(Activity, activity_id), "load activity"
        )
        if activity is None:
            raise ReferenceNotFoundError("Activity", activity_id)
        return activity

    def _assignment_hook(self, disposition_id: str, actor: Actor):
        def _notify():
            disposition = self.db.get(Disposition, disposition_id)
            if disposition is not None:
                self.notifications.notify_assignment(disposition, actor.name)
        return _notify
