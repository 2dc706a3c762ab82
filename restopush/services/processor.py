import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from restopush.config import settings
from restopush.database import as_utc, utc_now
from restopush.models.notification import NotificationStatus, ScheduledNotification
from restopush.services.dispatcher import OutboundNotification
from restopush.services.push_tokens import PushTokenService
from restopush.services.recorder import OutcomeRecorder
from restopush.services.sender import NotificationSender

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class DueNotificationProcessor:
    """One pass of the scheduled-notification driver.

    Meant to be triggered from outside (HTTP cron endpoint or the
    notification_cron job). Rows are claimed one at a time with a conditional
    update, so overlapping runs never dispatch the same row twice.
    """

    def __init__(
        self,
        db: Session,
        gateway,
        clock: Optional[Callable] = None,
        sender: Optional[NotificationSender] = None,
        recorder: Optional[OutcomeRecorder] = None,
        batch_limit: Optional[int] = None,
        stale_after: Optional[timedelta] = None,
        lease: Optional[timedelta] = None,
    ):
        self.db = db
        self.clock = clock or utc_now
        self.recorder = recorder or OutcomeRecorder(db, clock=self.clock)
        self.sender = sender or NotificationSender(
            db, gateway, clock=self.clock, recorder=self.recorder
        )
        self.batch_limit = batch_limit or settings.DUE_BATCH_LIMIT
        self.stale_after = stale_after or timedelta(hours=settings.STALE_AFTER_HOURS)
        self.lease = lease or timedelta(minutes=settings.CLAIM_LEASE_MINUTES)
        self.tokens = PushTokenService(db, clock=self.clock)

    def run(self) -> ProcessingResult:
        result = ProcessingResult()
        now = self.clock()

        self.release_expired_claims(now)
        due = self.fetch_due(now)
        if not due:
            logger.info("No due notifications found")
        else:
            logger.info(f"Found {len(due)} due notifications")

        for row_id in due:
            self._process_one(row_id, now, result)

        self.recorder.cleanup()
        self.tokens.cleanup_inactive()
        return result

    def fetch_due(self, now) -> List[int]:
        rows = (
            self.db.query(ScheduledNotification.id)
            .filter(
                ScheduledNotification.status == NotificationStatus.PENDING,
                ScheduledNotification.scheduled_for <= now,
            )
            .order_by(ScheduledNotification.scheduled_for.asc(), ScheduledNotification.id.asc())
            .limit(self.batch_limit)
            .all()
        )
        return [r.id for r in rows]

    def claim(self, row_id: int, now) -> Optional[ScheduledNotification]:
        """pending -> claimed, only if nobody else got there first."""
        updated = (
            self.db.query(ScheduledNotification)
            .filter(
                ScheduledNotification.id == row_id,
                ScheduledNotification.status == NotificationStatus.PENDING,
            )
            .update(
                {
                    ScheduledNotification.status: NotificationStatus.CLAIMED,
                    ScheduledNotification.claimed_at: now,
                    ScheduledNotification.attempts: ScheduledNotification.attempts + 1,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        if updated != 1:
            return None
        return self.db.get(ScheduledNotification, row_id, populate_existing=True)

    def renew_claim(self, row_id: int) -> bool:
        """Push the lease forward while a long dispatch is still running."""
        try:
            renewed = (
                self.db.query(ScheduledNotification)
                .filter(
                    ScheduledNotification.id == row_id,
                    ScheduledNotification.status == NotificationStatus.CLAIMED,
                )
                .update({ScheduledNotification.claimed_at: self.clock()}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Failed to renew claim on notification {row_id}", exc_info=True)
            return False
        return renewed == 1

    def release_expired_claims(self, now) -> int:
        cutoff = now - self.lease
        try:
            released = (
                self.db.query(ScheduledNotification)
                .filter(
                    ScheduledNotification.status == NotificationStatus.CLAIMED,
                    ScheduledNotification.claimed_at < cutoff,
                )
                .update(
                    {
                        ScheduledNotification.status: NotificationStatus.PENDING,
                        ScheduledNotification.claimed_at: None,
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to release expired notification claims", exc_info=True)
            return 0
        if released:
            logger.warning(f"Released {released} abandoned notification claims")
        return released

    def _process_one(self, row_id: int, now, result: ProcessingResult):
        try:
            row = self.claim(row_id, now)
        except SQLAlchemyError as exc:
            self.db.rollback()
            result.errors.append(f"Error claiming notification {row_id}: {exc}")
            logger.error(f"Error claiming notification {row_id}", exc_info=True)
            return
        if row is None:
            logger.info(f"Notification {row_id} already claimed by another run")
            return

        result.processed += 1
        title = row.title
        try:
            age = now - as_utc(row.scheduled_for)
            if age > self.stale_after:
                hours = round(age.total_seconds() / 3600)
                logger.info(f"Skipping old notification ({hours}h old): {title}")
                self.recorder.mark_skipped(row, "Too old to send")
                result.skipped += 1
                return

            if not (row.title or "").strip() or not (row.body or "").strip():
                logger.info(f"Skipping invalid notification {row_id}: missing title or body")
                self.recorder.mark_skipped(row, "Invalid notification data")
                result.skipped += 1
                return

            logger.info(f"Processing notification: {title}")
            outbound = OutboundNotification(
                type=row.type, title=row.title, body=row.body, data=dict(row.data or {})
            )
            sent = self.sender.send(
                outbound,
                target_audience=row.target_audience or {"all": True},
                scheduled_notification_id=row_id,
                heartbeat=lambda: self.renew_claim(row_id),
            )

            if sent.gated:
                self.recorder.mark_skipped(row, "Quiet hours")
                result.skipped += 1
            elif sent.transport_errors and sent.sent_count == 0:
                error = "; ".join(sent.transport_errors)
                self.recorder.mark_failed(row, error)
                result.failed += 1
                result.errors.append(f"{title}: {error}")
                logger.info(f"Failed to send notification: {title}")
            else:
                self.recorder.mark_sent(
                    row, sent.sent_count, "; ".join(sent.transport_errors) or None
                )
                result.sent += 1
                logger.info(f"Successfully sent notification: {title} ({sent.sent_count} recipients)")
        except Exception as exc:
            self.db.rollback()
            message = f"Error processing notification {row_id}: {exc}"
            result.failed += 1
            result.errors.append(message)
            logger.error(message, exc_info=True)
            self.recorder.mark_failed(row, str(exc))
