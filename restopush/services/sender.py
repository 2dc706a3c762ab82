import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from restopush.database import utc_now
from restopush.models.notification import NotificationType
from restopush.services.audience import AudienceResolver
from restopush.services.dispatcher import (
    SKIPPED,
    BatchDispatcher,
    DispatchResult,
    OutboundNotification,
    RecipientOutcome,
)
from restopush.services.quiet_hours import QUIET_HOURS_REASON, QuietHoursGate
from restopush.services.recorder import OutcomeRecorder

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    sent_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    details: List[dict] = field(default_factory=list)
    transport_errors: List[str] = field(default_factory=list)
    gated: bool = False
    recipient_count: int = 0

    @property
    def message(self) -> str:
        if self.gated:
            return f"Notification skipped for {self.skipped_count} users due to quiet hours"
        if self.recipient_count == 0:
            return "No users match target audience or have this notification type enabled"
        return f"Notification sent to {self.sent_count} users"


class NotificationSender:
    """Resolve the audience, apply the quiet-hours gate, dispatch and record."""

    def __init__(
        self,
        db: Session,
        gateway,
        clock: Optional[Callable] = None,
        resolver: Optional[AudienceResolver] = None,
        gate: Optional[QuietHoursGate] = None,
        dispatcher: Optional[BatchDispatcher] = None,
        recorder: Optional[OutcomeRecorder] = None,
    ):
        self.db = db
        self.clock = clock or utc_now
        self.resolver = resolver or AudienceResolver(db)
        self.gate = gate or QuietHoursGate(clock=self.clock)
        self.dispatcher = dispatcher or BatchDispatcher(gateway, clock=self.clock)
        self.recorder = recorder or OutcomeRecorder(db, clock=self.clock)

    def send(
        self,
        notification: OutboundNotification,
        target_audience=None,
        scheduled_notification_id: Optional[int] = None,
        heartbeat: Optional[Callable[[], None]] = None,
    ) -> SendResult:
        notification_type = NotificationType(notification.type)
        recipients = self.resolver.resolve(target_audience or {"all": True}, notification_type)
        if not recipients:
            logger.info(f"No recipients for '{notification.title}'")
            return SendResult(success=True)

        logger.info(f"Found {len(recipients)} users to notify for '{notification.title}'")

        if not self.gate.allows(notification_type):
            hour = self.gate.local_time().hour
            logger.info(f"Skipping '{notification.title}' due to quiet hours ({hour}:00 local time)")
            dispatch = DispatchResult(
                outcomes=[RecipientOutcome(r, SKIPPED, QUIET_HOURS_REASON) for r in recipients]
            )
            gated = True
        else:
            dispatch = self.dispatcher.dispatch(recipients, notification, heartbeat=heartbeat)
            gated = False
            logger.info(f"Dispatched '{notification.title}' in {dispatch.batch_count} batches")

        summary = self.recorder.record(
            dispatch.outcomes, notification, scheduled_notification_id=scheduled_notification_id
        )
        logger.info(
            f"Sent: {summary.success_count}, failed: {summary.failure_count}, "
            f"skipped: {summary.skipped_count}"
        )
        return SendResult(
            success=True,
            sent_count=summary.success_count,
            failed_count=summary.failure_count,
            skipped_count=summary.skipped_count,
            details=[
                {
                    "user_id": o.recipient.user_id,
                    "token": o.recipient.token,
                    "success": o.success,
                    "error": o.error,
                }
                for o in dispatch.outcomes
            ],
            transport_errors=dispatch.transport_errors,
            gated=gated,
            recipient_count=len(recipients),
        )
