import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restopush.config import settings
from restopush.database import utc_now
from restopush.models.notification import (
    NotificationDeliveryFailure,
    NotificationHistory,
    NotificationStatus,
    NotificationType,
    ScheduledNotification,
)
from restopush.services.dispatcher import FAILURE, SKIPPED, SUCCESS, RecipientOutcome

logger = logging.getLogger(__name__)


@dataclass
class OutcomeSummary:
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0


class OutcomeRecorder:
    """Persists delivery outcomes and terminal states.

    Every write here is best-effort: a failed insert or update is rolled
    back and logged so one bad row never aborts a driver run.
    """

    def __init__(
        self,
        db: Session,
        record_failures: Optional[bool] = None,
        clock: Optional[Callable] = None,
    ):
        self.db = db
        self.record_failures = (
            settings.RECORD_DELIVERY_FAILURES if record_failures is None else record_failures
        )
        self.clock = clock or utc_now

    def record(
        self,
        outcomes: List[RecipientOutcome],
        notification,
        scheduled_notification_id: Optional[int] = None,
    ) -> OutcomeSummary:
        summary = OutcomeSummary(
            success_count=sum(1 for o in outcomes if o.status == SUCCESS),
            failure_count=sum(1 for o in outcomes if o.status == FAILURE),
            skipped_count=sum(1 for o in outcomes if o.status == SKIPPED),
        )
        notification_type = NotificationType(notification.type)
        sent_at = self.clock()

        history = [
            NotificationHistory(
                user_id=o.recipient.user_id,
                type=notification_type,
                title=notification.title,
                body=notification.body,
                data=notification.data or {},
                sent_at=sent_at,
                read=False,
                clicked=False,
            )
            for o in outcomes
            if o.status == SUCCESS
        ]
        if history:
            self._save(history, f"{len(history)} notification history rows")

        failures = [o for o in outcomes if o.status == FAILURE]
        for o in failures:
            logger.warning(
                f"Delivery failed for user {o.recipient.user_id} "
                f"(token {o.recipient.token}): {o.error}"
            )
        if failures and self.record_failures:
            self._save(
                [
                    NotificationDeliveryFailure(
                        scheduled_notification_id=scheduled_notification_id,
                        user_id=o.recipient.user_id,
                        token=o.recipient.token,
                        type=notification_type,
                        error=o.error,
                        created_at=sent_at,
                    )
                    for o in failures
                ],
                f"{len(failures)} delivery failure rows",
            )
        return summary

    def _save(self, rows: list, what: str) -> bool:
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to save {what}", exc_info=True)
            return False
        logger.info(f"Saved {what}")
        return True

    # ---------- terminal states ----------
    def mark_sent(self, row: ScheduledNotification, sent_count: int, error: Optional[str] = None) -> bool:
        return self._mark(row, NotificationStatus.SENT, sent_count, error)

    def mark_failed(self, row: ScheduledNotification, error: str) -> bool:
        return self._mark(row, NotificationStatus.FAILED, 0, error)

    def mark_skipped(self, row: ScheduledNotification, reason: str) -> bool:
        return self._mark(row, NotificationStatus.SKIPPED, 0, f"Skipped: {reason}")

    def _mark(
        self,
        row: ScheduledNotification,
        status: NotificationStatus,
        sent_count: int,
        error: Optional[str],
    ) -> bool:
        row_id = row.id
        try:
            row.sent = True
            row.status = status
            row.sent_count = sent_count
            row.error = error
            row.sent_at = self.clock()
            row.claimed_at = None
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to mark notification {row_id} as {status.value}", exc_info=True)
            return False
        return True

    # ---------- retention ----------
    def cleanup(self, retention_days: Optional[int] = None) -> int:
        cutoff = self.clock() - timedelta(days=retention_days or settings.RETENTION_DAYS)
        try:
            deleted = (
                self.db.query(ScheduledNotification)
                .filter(
                    ScheduledNotification.sent.is_(True),
                    ScheduledNotification.sent_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to clean up old scheduled notifications", exc_info=True)
            return 0
        if deleted:
            logger.info(f"Cleaned up {deleted} old scheduled notifications")
        return deleted
