"""
Reference validator - confirms referenced rows exist before anything is written.

Raises ReferenceNotFoundError (never ValidationError) so callers can tell
"not found" apart from "invalid input".
"""
from typing import Iterable, List

from sqlalchemy.orm import Session

from dispositions.core.exceptions import ReferenceNotFoundError
from dispositions.core.retry import handle_database_operation
from dispositions.models.domain import Activity, Letter, User
from dispositions.models.enums import Role
from dispositions.services.authorization import Actor

# Entity label -> model, for the generic exists() check
REFERENCE_TABLES = {
    "Letter": Letter,
    "Activity": Activity,
    "User": User,
}


class ReferenceValidator:
    """Existence checks for letters, activities and users."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, entity_type: str, entity_id: str) -> bool:
        model = REFERENCE_TABLES[entity_type]
        if not entity_id:
            return False
        return handle_database_operation(
            self.db,
            lambda: self.db.query(model.id).filter(model.id == entity_id).first() is not None,
            f"exists {entity_type}",
        )

    def missing_users(self, user_ids: Iterable[str]) -> List[str]:
        """Return the ids from ``user_ids`` that have no users row, in input order."""
        user_ids = list(user_ids)
        if not user_ids:
            return []
        found = handle_database_operation(
            self.db,
            lambda: {row.id for row in self.db.query(User.id).filter(User.id.in_(user_ids)).all()},
            "missing_users",
        )
        return [user_id for user_id in user_ids if user_id not in found]

    def require(self, entity_type: str, entity_id: str) -> None:
        if not self.exists(entity_type, entity_id):
            raise ReferenceNotFoundError(entity_type, entity_id)

    def require_letter(self, letter_id: str) -> None:
        self.require("Letter", letter_id)

    def require_activity(self, activity_id: str) -> None:
        self.require("Activity", activity_id)

    def require_user(self, user_id: str) -> None:
        self.require("User", user_id)

    def require_users(self, user_ids: Iterable[str]) -> None:
        missing = self.missing_users(user_ids)
        if missing:
            raise ReferenceNotFoundError("User", missing)

    def require_link_references(self, letter_id: str, activity_id: str) -> None:
        """Both ends of a letter-activity link must exist."""
        self.require_letter(letter_id)
        self.require_activity(activity_id)

    def team_user_ids(self, actor: Actor) -> List[str]:
        """
        Users whose dispositions ``actor`` may see.

        Super Admin: everyone. Supervisor: Staff and Supervisors. Staff: themselves.
        """
        if actor.role == Role.SUPER_ADMIN:
            query = self.db.query(User.id)
        elif actor.role == Role.SUPERVISOR:
            query = self.db.query(User.id).filter(User.role.in_([Role.STAFF, Role.SUPERVISOR]))
        else:
            return [actor.id]
        return handle_database_operation(
            self.db, lambda: [row.id for row in query.all()], "team_user_ids"
        )
