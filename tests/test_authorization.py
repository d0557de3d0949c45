"""Tests for the authorization guard predicates and read filter."""
from types import SimpleNamespace

import pytest

from dispositions.core.exceptions import AuthorizationError
from dispositions.models.enums import Role
from dispositions.services.authorization import (
    Actor,
    can_create,
    can_delegate,
    can_delete,
    can_link,
    can_update,
    can_view,
    require_delete,
    require_elevated,
    require_link,
    require_update,
    visible_dispositions,
)

STAFF = Actor(id="u1", name="User One")
OTHER_STAFF = Actor(id="u3", name="User Three")
SUPERVISOR = Actor(id="supervisor", name="Sam", role=Role.SUPERVISOR)
ADMIN = Actor(id="admin", name="Ada", role=Role.SUPER_ADMIN)


class TestUpdatePermission:
    """Who may change a disposition's fields."""

    def test_assignee_creator_and_elevated_roles_may_update(self):
        """
        INVARIANT: Elevated roles, the creator and the assignee may update.
        """
        assert can_update(STAFF, assigned_to="u1", created_by="supervisor")
        assert can_update(STAFF, assigned_to="u2", created_by="u1")
        assert can_update(SUPERVISOR, assigned_to="u2", created_by="admin")
        assert can_update(ADMIN, assigned_to="u2", created_by="supervisor")

    def test_unrelated_staff_may_not_update(self):
        assert not can_update(OTHER_STAFF, assigned_to="u2", created_by="supervisor")
        with pytest.raises(AuthorizationError):
            require_update(OTHER_STAFF, assigned_to="u2", created_by="supervisor")

    def test_missing_actor_is_always_refused(self):
        assert not can_create(None)
        assert not can_update(None, "u1", "u1")
        assert not can_delete(None, "u1")
        assert not can_delegate(None, "u1")
        assert not can_link(None)


class TestDeletePermission:

    def test_assignee_alone_cannot_delete(self):
        """
        INVARIANT: Only the creator or a Super Admin may delete.
        """
        assert not can_delete(STAFF, created_by="supervisor")
        assert not can_delete(SUPERVISOR, created_by="admin")
        assert can_delete(SUPERVISOR, created_by="supervisor")
        assert can_delete(ADMIN, created_by="supervisor")

    def test_refusal_carries_a_readable_reason(self):
        with pytest.raises(AuthorizationError) as exc_info:
            require_delete(STAFF, created_by="supervisor")
        assert exc_info.value.message
        assert exc_info.value.category == "authorization"


class TestDelegateAndLinkPermission:

    def test_current_assignee_and_elevated_roles_may_delegate(self):
        assert can_delegate(STAFF, assigned_to="u1")
        assert can_delegate(SUPERVISOR, assigned_to="u2")
        assert can_delegate(ADMIN, assigned_to="u2")
        assert not can_delegate(OTHER_STAFF, assigned_to="u2")

    def test_linking_needs_supervisor_or_super_admin(self):
        assert can_link(SUPERVISOR)
        assert can_link(ADMIN)
        assert not can_link(STAFF)
        with pytest.raises(AuthorizationError):
            require_link(STAFF)

    def test_scheduled_jobs_need_supervisor_or_super_admin(self):
        require_elevated(SUPERVISOR)
        require_elevated(ADMIN)
        with pytest.raises(AuthorizationError):
            require_elevated(STAFF)
        with pytest.raises(AuthorizationError):
            require_elevated(None)


class TestVisibility:
    """Role-based read filter."""

    rows = [
        SimpleNamespace(id="d1", assigned_to="u1"),
        SimpleNamespace(id="d2", assigned_to="u2"),
        SimpleNamespace(id="d3", assigned_to="supervisor"),
        SimpleNamespace(id="d4", assigned_to="outsider"),
    ]

    def test_super_admin_sees_everything(self):
        assert len(visible_dispositions(ADMIN, self.rows)) == 4

    def test_supervisor_sees_team(self):
        visible = visible_dispositions(SUPERVISOR, self.rows, team_user_ids=["u1", "u2", "supervisor"])
        assert [d.id for d in visible] == ["d1", "d2", "d3"]

    def test_supervisor_without_team_sees_own(self):
        visible = visible_dispositions(SUPERVISOR, self.rows, team_user_ids=[])
        assert [d.id for d in visible] == ["d3"]

    def test_staff_sees_own_only(self):
        assert [d.id for d in visible_dispositions(STAFF, self.rows)] == ["d1"]

    def test_anonymous_sees_nothing(self):
        assert visible_dispositions(None, self.rows) == []

    def test_single_row_view_adds_the_creator(self):
        row = SimpleNamespace(id="d5", assigned_to="u2", created_by="u1")
        assert can_view(STAFF, row)
        assert not can_view(OTHER_STAFF, row)
        assert can_view(SUPERVISOR, row, team_user_ids=["u1", "u2"])
        assert can_view(ADMIN, row)
        assert not can_view(None, row)
