"""
Notification dispatcher and post-commit hook runner.

Notifications are a best-effort side channel. The dispatcher raises
NotificationError when it cannot record one; lifecycle code never calls it
directly but queues it as a post-commit hook, and ``run_post_commit`` logs and
drops any error a hook raises.

Usage:
    hooks = [lambda: dispatcher.notify_assignment(disposition, actor)]
    run_post_commit(hooks, context="delegate")
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dispositions.config import get_settings
from dispositions.core.exceptions import NotificationError
from dispositions.database import utcnow
from dispositions.models.domain import Activity, Disposition, Notification
from dispositions.models.enums import DispositionStatus, NotificationType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class NotificationContext:
    disposition_id: Optional[str] = None
    disposition_text: Optional[str] = None
    activity_id: Optional[str] = None
    activity_title: Optional[str] = None


def run_post_commit(hooks: Iterable[Callable[[], object]], context: str) -> None:
    """Run best-effort side effects after the primary change is committed."""
    for hook in hooks:
        try:
            hook()
        except Exception:
            logger.warning("post_commit_hook_failed", context=context, exc_info=True)


class NotificationDispatcher:
    """Creates notification records, de-duplicated per (user, disposition, type)."""

    def __init__(self, db: Session):
        self.db = db

    # ── Create ────────────────────────────────────────────────────────────

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        context: Optional[NotificationContext] = None,
    ) -> Optional[Notification]:
        """
        Record a notification for ``user_id``.

        Returns None when a matching notification already exists inside the
        de-duplication window: same calendar day for deadline reminders,
        ``notification_dedupe_window_hours`` for everything else.
        """
        context = context or NotificationContext()
        try:
            if context.disposition_id and self._is_duplicate(user_id, notification_type, context.disposition_id):
                logger.debug(
                    "notification_skipped_duplicate",
                    user_id=user_id,
                    type=notification_type.value,
                    disposition_id=context.disposition_id,
                )
                return None

            notification = Notification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                disposition_id=context.disposition_id,
                disposition_text=context.disposition_text,
                activity_id=context.activity_id,
                activity_title=context.activity_title,
            )
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise NotificationError(f"Could not record notification: {exc}", user_id=user_id) from exc

        logger.info("notification_created", user_id=user_id, type=notification_type.value,
                    disposition_id=context.disposition_id)
        return notification

    def _is_duplicate(self, user_id: str, notification_type: NotificationType, disposition_id: str) -> bool:
        now = utcnow()
        if notification_type == NotificationType.DEADLINE:
            since = datetime.combine(now.date(), time.min)
        else:
            since = now - timedelta(hours=get_settings().notification_dedupe_window_hours)
        existing = (
            self.db.query(Notification.id)
            .filter(
                Notification.user_id == user_id,
                Notification.disposition_id == disposition_id,
                Notification.type == notification_type,
                Notification.created_at >= since,
            )
            .first()
        )
        return existing is not None

    # ── Disposition helpers ───────────────────────────────────────────────

    def _context(self, disposition: Disposition) -> NotificationContext:
        activity = self.db.get(Activity, disposition.activity_id)
        return NotificationContext(
            disposition_id=disposition.id,
            disposition_text=disposition.instruction_text,
            activity_id=disposition.activity_id,
            activity_title=activity.title if activity else None,
        )

    def notify_assignment(self, disposition: Disposition, assigner_name: str) -> Optional[Notification]:
        context = self._context(disposition)
        return self.notify(
            disposition.assigned_to,
            NotificationType.ASSIGNMENT,
            "New disposition",
            f'{assigner_name} assigned you a disposition for activity "{context.activity_title}"',
            context,
        )

    def notify_update(
        self, disposition: Disposition, updater_name: str, change_description: str
    ) -> Optional[Notification]:
        context = self._context(disposition)
        return self.notify(
            disposition.assigned_to,
            NotificationType.UPDATE,
            "Disposition updated",
            f"{updater_name} updated your disposition: {change_description}",
            context,
        )

    def notify_deadline(self, disposition: Disposition) -> Optional[Notification]:
        if disposition.status in (DispositionStatus.COMPLETED, DispositionStatus.CANCELLED):
            return None
        context = self._context(disposition)
        return self.notify(
            disposition.assigned_to,
            NotificationType.DEADLINE,
            "Disposition deadline approaching",
            f'Your disposition for activity "{context.activity_title}" is due on '
            f"{disposition.deadline.isoformat()}",
            context,
        )

    # ── Deadline sweep ────────────────────────────────────────────────────

    def remind_approaching_deadlines(self, today: Optional[date] = None) -> List[Notification]:
        """
        Notify assignees of open dispositions due between today and the end of
        the reminder window. Read-only with respect to dispositions.
        """
        today = today or utcnow().date()
        horizon = today + timedelta(days=get_settings().deadline_reminder_window_days)
        due = (
            self.db.query(Disposition)
            .filter(
                Disposition.deadline.isnot(None),
                Disposition.deadline >= today,
                Disposition.deadline <= horizon,
                Disposition.status.in_([DispositionStatus.PENDING, DispositionStatus.IN_PROGRESS]),
            )
            .all()
        )

        sent = []
        for disposition in due:
            try:
                notification = self.notify_deadline(disposition)
            except NotificationError:
                logger.warning("deadline_reminder_failed", disposition_id=disposition.id, exc_info=True)
                continue
            if notification is not None:
                sent.append(notification)

        logger.info("deadline_sweep_done", candidates=len(due), sent=len(sent))
        return sent
