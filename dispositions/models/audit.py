"""
Disposition history - the immutable, append-only audit trail.

History rows outlive the Disposition they describe: deleting or unlinking a
Disposition leaves its entries in place for compliance, so there is no foreign
key back to ``dispositions``.
"""
import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, Enum as SQLEnum, event

from dispositions.database import Base, utcnow
from dispositions.models.enums import HistoryAction


class ImmutableHistoryError(RuntimeError):
    """Raised when something tries to rewrite or remove a persisted history entry."""


class DispositionHistory(Base):
    """
    One field-level change to a Disposition.

    Invariants:
    - Once written, never edited or deleted
    - performed_at is always set server-side
    """
    __tablename__ = "disposition_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Insertion order; breaks performed_at ties inside a single operation
    sequence = Column(Integer, nullable=False, index=True)
    disposition_id = Column(String(36), nullable=False, index=True)
    action = Column(SQLEnum(HistoryAction), nullable=False, index=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    performed_by = Column(String(36), nullable=False)
    performed_at = Column(DateTime, nullable=False, default=utcnow, index=True)


@event.listens_for(DispositionHistory, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise ImmutableHistoryError(f"History entry {target.id} is immutable")


@event.listens_for(DispositionHistory, "before_delete")
def _refuse_history_delete(mapper, connection, target):
    raise ImmutableHistoryError(f"History entry {target.id} cannot be deleted")
