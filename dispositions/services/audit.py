"""
Audit trail recorder - append-only sink for disposition history.

A failed history write is logged and swallowed: the business state change it
documents has already happened (or is about to) and must not be undone because
the audit side-effect failed.
"""
from typing import List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dispositions.core.retry import handle_database_operation
from dispositions.database import utcnow
from dispositions.models.audit import DispositionHistory
from dispositions.models.enums import HistoryAction

logger = structlog.get_logger(__name__)


class AuditTrailRecorder:
    """Writes and reads DispositionHistory rows."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        disposition_id: str,
        action: HistoryAction,
        old_value: Optional[str],
        new_value: Optional[str],
        performed_by: str,
    ) -> Optional[DispositionHistory]:
        """
        Append one history entry and commit it on its own.

        Returns the entry, or None when the write failed (already logged).
        """
        try:
            last = (
                self.db.query(func.max(DispositionHistory.sequence))
                .filter(DispositionHistory.disposition_id == disposition_id)
                .scalar()
            )
            entry = DispositionHistory(
                sequence=(last or 0) + 1,
                disposition_id=disposition_id,
                action=action,
                old_value=old_value,
                new_value=new_value,
                performed_by=performed_by,
                performed_at=utcnow(),
            )
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                "history_write_failed",
                disposition_id=disposition_id,
                action=action.value,
                performed_by=performed_by,
                exc_info=True,
            )
            return None
        return entry

    def history(self, disposition_id: str) -> List[DispositionHistory]:
        """Entries for one disposition, newest first."""
        return handle_database_operation(
            self.db,
            lambda: (
                self.db.query(DispositionHistory)
                .filter(DispositionHistory.disposition_id == disposition_id)
                .order_by(
                    DispositionHistory.performed_at.desc(),
                    DispositionHistory.sequence.desc(),
                )
                .all()
            ),
            "history",
        )
