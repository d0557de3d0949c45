"""
Authorization guard - pure predicates over (actor, disposition).

The actor is always passed in explicitly; nothing here reads request or
session state. Roles are the closed ``Role`` enum and are only compared here.

Usage:
    from dispositions.services.authorization import Actor, require_update

    require_update(actor, disposition.assigned_to, disposition.created_by)
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, TypeVar

from dispositions.core.exceptions import MESSAGES, AuthorizationError
from dispositions.models.enums import Role

ELEVATED_ROLES = frozenset({Role.SUPERVISOR, Role.SUPER_ADMIN})


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""
    id: str
    name: str
    role: Role = Role.STAFF

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


def can_create(actor: Optional[Actor]) -> bool:
    """Any authenticated actor may create; linked creation is gated by can_link."""
    return actor is not None


def can_link(actor: Optional[Actor]) -> bool:
    """Linking/unlinking a letter and an activity needs a Supervisor or Super Admin."""
    return actor is not None and actor.is_elevated


def can_update(actor: Optional[Actor], assigned_to: str, created_by: str) -> bool:
    if actor is None:
        return False
    if actor.is_elevated:
        return True
    return actor.id in (created_by, assigned_to)


def can_delete(actor: Optional[Actor], created_by: str) -> bool:
    """Only the creator or a Super Admin. The assignee alone cannot delete."""
    if actor is None:
        return False
    return actor.is_super_admin or actor.id == created_by


def can_delegate(actor: Optional[Actor], assigned_to: str) -> bool:
    if actor is None:
        return False
    return actor.is_elevated or actor.id == assigned_to


def require_create(actor: Optional[Actor]) -> None:
    if not can_create(actor):
        raise AuthorizationError(MESSAGES["LOGIN_REQUIRED"])


def require_link(actor: Optional[Actor]) -> None:
    if actor is None:
        raise AuthorizationError(MESSAGES["LOGIN_REQUIRED"])
    if not can_link(actor):
        raise AuthorizationError(MESSAGES["LINK_DENIED"], required_role=Role.SUPERVISOR.value)


def require_update(actor: Optional[Actor], assigned_to: str, created_by: str) -> None:
    if not can_update(actor, assigned_to, created_by):
        raise AuthorizationError(MESSAGES["UPDATE_DENIED"])


def require_delete(actor: Optional[Actor], created_by: str) -> None:
    if not can_delete(actor, created_by):
        raise AuthorizationError(MESSAGES["DELETE_DENIED"], required_role=Role.SUPER_ADMIN.value)


def require_delegate(actor: Optional[Actor], assigned_to: str) -> None:
    if not can_delegate(actor, assigned_to):
        raise AuthorizationError(MESSAGES["DELEGATE_DENIED"])


T = TypeVar("T")


def visible_dispositions(
    actor: Optional[Actor],
    dispositions: Sequence[T],
    team_user_ids: Optional[Iterable[str]] = None,
) -> List[T]:
    """
    Role-based read filter.

    - Super Admin sees everything
    - Supervisor sees dispositions assigned to their team
    - Staff (or a Supervisor without a team) sees only their own
    """
    if actor is None:
        return []
    if actor.is_super_admin:
        return list(dispositions)

    team = set(team_user_ids or [])
    if actor.role == Role.SUPERVISOR and team:
        return [d for d in dispositions if d.assigned_to in team]

    return [d for d in dispositions if d.assigned_to == actor.id]


def can_view(actor: Optional[Actor], disposition, team_user_ids: Optional[Iterable[str]] = None) -> bool:
    """Single-row form of the read filter. The creator can always see what they created."""
    if actor is None:
        return False
    if actor.id == disposition.created_by:
        return True
    return bool(visible_dispositions(actor, [disposition], team_user_ids))


def require_view(actor: Optional[Actor], disposition, team_user_ids: Optional[Iterable[str]] = None) -> None:
    if actor is None:
        raise AuthorizationError(MESSAGES["LOGIN_REQUIRED"])
    if not can_view(actor, disposition, team_user_ids):
        raise AuthorizationError(MESSAGES["VIEW_DENIED"])


def require_elevated(actor: Optional[Actor]) -> None:
    if actor is None:
        raise AuthorizationError(MESSAGES["LOGIN_REQUIRED"])
    if not actor.is_elevated:
        raise AuthorizationError(MESSAGES["JOB_DENIED"], required_role=Role.SUPERVISOR.value)
