"""
Transactional procedures at the store boundary.

Each procedure runs as a single database transaction opened with the session's
own ``begin()``: either every write lands or none does. The linking coordinator
invokes these and never does its own compensation.
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from dispositions.core.exceptions import ReferenceNotFoundError
from dispositions.database import atomic, utcnow
from dispositions.models.domain import Activity, Disposition, new_id
from dispositions.models.enums import DispositionStatus


@dataclass
class DispositionPayload:
    """The disposition set that must accompany a new letter-activity link."""
    assignees: List[str]
    instruction_text: str
    created_by: str
    deadline: Optional[date] = None


def _new_disposition(letter_id: str, activity_id: str, assignee: str, payload: DispositionPayload) -> Disposition:
    return Disposition(
        id=new_id(),
        letter_id=letter_id,
        activity_id=activity_id,
        assigned_to=assignee,
        instruction_text=payload.instruction_text,
        status=DispositionStatus.PENDING,
        deadline=payload.deadline,
        reports=[],
        attachments=[],
        created_by=payload.created_by,
        created_at=utcnow(),
    )


def link_letter_to_activity(
    db: Session, letter_id: str, activity_id: str, payload: DispositionPayload
) -> List[str]:
    """
    Mark the activity as linked to the letter and create one Pending
    disposition per assignee, atomically.

    Returns:
        Ids of the created dispositions, in assignee order
    """
    created_ids = []
    with atomic(db):
        activity = db.get(Activity, activity_id)
        if activity is None:
            raise ReferenceNotFoundError("Activity", activity_id)

        activity.linked_letter_id = letter_id
        activity.updated_at = utcnow()

        for assignee in payload.assignees:
            disposition = _new_disposition(letter_id, activity_id, assignee, payload)
            db.add(disposition)
            created_ids.append(disposition.id)

        db.flush()

    return created_ids


def unlink_letter_from_activity(db: Session, letter_id: str, activity_id: str) -> None:
    """
    Clear the activity's link back-reference and delete every disposition for
    the pair, atomically. The letter and activity rows are left in place.
    """
    with atomic(db):
        activity = db.get(Activity, activity_id)
        if activity is None:
            raise ReferenceNotFoundError("Activity", activity_id)

        if activity.linked_letter_id == letter_id:
            activity.linked_letter_id = None
            activity.updated_at = utcnow()

        dispositions = (
            db.query(Disposition)
            .filter(
                Disposition.letter_id == letter_id,
                Disposition.activity_id == activity_id,
            )
            .all()
        )
        for disposition in dispositions:
            db.delete(disposition)

        db.flush()
