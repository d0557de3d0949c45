"""Tests for the notification dispatcher and the deadline sweep."""
from datetime import timedelta

import pytest

from dispositions.core.exceptions import NotificationError
from dispositions.database import utcnow
from dispositions.models.attachment import Attachment
from dispositions.models.domain import Notification
from dispositions.models.enums import NotificationType
from dispositions.services.notifications import NotificationContext, NotificationDispatcher, run_post_commit


class TestDeduplication:

    def test_same_notification_is_not_sent_twice(self, seeded, disposition):
        dispatcher = NotificationDispatcher(seeded)
        # The disposition fixture already notified u2 of the assignment
        assert dispatcher.notify_assignment(disposition, "Sam Supervisor") is None
        assert seeded.query(Notification).filter_by(user_id="u2", type=NotificationType.ASSIGNMENT).count() == 1

    def test_different_types_are_independent(self, seeded, disposition):
        dispatcher = NotificationDispatcher(seeded)
        assert dispatcher.notify_update(disposition, "Sam Supervisor", "status changed") is not None

    def test_notification_without_disposition_is_always_sent(self, seeded):
        dispatcher = NotificationDispatcher(seeded)
        dispatcher.notify("u1", NotificationType.UPDATE, "Heads up", "Something changed")
        dispatcher.notify("u1", NotificationType.UPDATE, "Heads up", "Something changed")
        assert seeded.query(Notification).filter_by(user_id="u1").count() == 2

    def test_context_is_stored(self, seeded, disposition):
        notification = seeded.query(Notification).filter_by(user_id="u2").one()
        assert notification.disposition_id == disposition.id
        assert notification.activity_id == "activity-1"
        assert notification.activity_title == "Quarterly coordination meeting"


class TestPostCommitHooks:

    def test_failing_hook_is_swallowed_and_later_hooks_still_run(self):
        ran = []

        def failing():
            raise NotificationError("down", user_id="u1")

        run_post_commit([failing, lambda: ran.append("second")], context="test")

        assert ran == ["second"]

    def test_store_failure_becomes_notification_error(self, seeded, monkeypatch):
        from sqlalchemy.exc import OperationalError

        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(seeded, "commit", broken_commit)

        with pytest.raises(NotificationError):
            NotificationDispatcher(seeded).notify(
                "u1", NotificationType.UPDATE, "t", "m", NotificationContext(disposition_id="d-1")
            )


class TestDeadlineSweep:
    """Approaching-deadline reminders."""

    def test_due_dispositions_are_reminded_once_per_day(self, lifecycle, supervisor, seeded):
        """
        INVARIANT: each eligible assignee gets one deadline reminder per day.
        """
        today = utcnow().date()
        lifecycle.create("letter-1", "activity-1", ["u1"], "Due tomorrow", deadline=today + timedelta(days=1),
                         actor=supervisor)
        lifecycle.create("letter-1", "activity-1", ["u2"], "Due today", deadline=today, actor=supervisor)
        dispatcher = NotificationDispatcher(seeded)

        first = dispatcher.remind_approaching_deadlines(today)
        second = dispatcher.remind_approaching_deadlines(today)

        assert sorted(n.user_id for n in first) == ["u1", "u2"]
        assert all(n.type == NotificationType.DEADLINE for n in first)
        assert second == []

    def test_far_off_and_undated_dispositions_are_skipped(self, lifecycle, supervisor, seeded):
        today = utcnow().date()
        lifecycle.create("letter-1", "activity-1", ["u1"], "Later", deadline=today + timedelta(days=5),
                         actor=supervisor)
        lifecycle.create("letter-1", "activity-1", ["u2"], "Whenever", actor=supervisor)

        assert NotificationDispatcher(seeded).remind_approaching_deadlines(today) == []

    def test_finished_dispositions_are_skipped(self, lifecycle, supervisor, seeded):
        today = utcnow().date()
        result = lifecycle.create("letter-1", "activity-1", ["u1", "u2"], "Due", deadline=today, actor=supervisor)
        done, cancelled = result.created
        lifecycle.attach_report(done.id, Attachment(name="r.pdf", url="https://x/r.pdf", is_link=True), supervisor)
        lifecycle.update_status(done.id, "Completed", supervisor)
        lifecycle.update_status(cancelled.id, "Cancelled", supervisor)

        assert NotificationDispatcher(seeded).remind_approaching_deadlines(today) == []

    def test_overdue_dispositions_are_not_reminded(self, lifecycle, supervisor, seeded):
        yesterday = utcnow().date() - timedelta(days=1)
        lifecycle.create("letter-1", "activity-1", ["u1"], "Overdue", deadline=yesterday, actor=supervisor)

        assert NotificationDispatcher(seeded).remind_approaching_deadlines(yesterday + timedelta(days=1)) == []
