import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from restopush.config import settings
from restopush.database import utc_now
from restopush.models.notification import NotificationType, Platform
from restopush.services.audience import Recipient
from restopush.services.push_gateway import PushGatewayError

logger = logging.getLogger(__name__)

EXPO_MAX_BATCH_SIZE = 100

SUCCESS = "success"
FAILURE = "failure"
SKIPPED = "skipped"


@dataclass
class RecipientOutcome:
    recipient: Recipient
    status: str
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == SUCCESS


@dataclass
class DispatchResult:
    outcomes: List[RecipientOutcome] = field(default_factory=list)
    transport_errors: List[str] = field(default_factory=list)
    batch_count: int = 0

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SUCCESS)


@dataclass
class OutboundNotification:
    type: NotificationType
    title: str
    body: str
    data: dict = field(default_factory=dict)
    badge: Optional[int] = None
    sound: Optional[str] = None


def chunked(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def build_message(notification: OutboundNotification, recipient: Recipient, timestamp: str) -> dict:
    message = {
        "to": recipient.token,
        "title": notification.title,
        "body": notification.body,
        "sound": notification.sound or "default",
        "data": {
            **(notification.data or {}),
            "type": NotificationType(notification.type).value,
            "userId": recipient.user_id,
            "timestamp": timestamp,
        },
    }
    if notification.badge is not None:
        message["badge"] = notification.badge
    if recipient.platform == Platform.ANDROID.value:
        message["channelId"] = "default"
    return message


def ticket_error(ticket: dict) -> str:
    details = ticket.get("details")
    if not isinstance(details, dict):
        details = {}
    return ticket.get("message") or details.get("error") or "Unknown push service error"


def classify_ticket(recipient: Recipient, ticket) -> RecipientOutcome:
    if ticket is None:
        return RecipientOutcome(recipient, FAILURE, "Missing push ticket in response")
    if not isinstance(ticket, dict):
        return RecipientOutcome(recipient, FAILURE, "Malformed push ticket")
    if ticket.get("status") == "ok":
        return RecipientOutcome(recipient, SUCCESS)
    return RecipientOutcome(recipient, FAILURE, ticket_error(ticket))


class BatchDispatcher:
    """Sends recipients to the push gateway in sequential, bounded batches.

    A batch that fails at transport level marks every recipient in it as a
    failure. Retryable transport errors (network, 429, 5xx) are retried with
    exponential backoff before giving up on the batch.
    """

    def __init__(
        self,
        gateway,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable] = None,
    ):
        self.gateway = gateway
        self.batch_size = min(batch_size or settings.PUSH_BATCH_SIZE, EXPO_MAX_BATCH_SIZE)
        self.max_attempts = max_attempts or settings.DISPATCH_MAX_ATTEMPTS
        self.backoff_seconds = (
            settings.DISPATCH_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self.sleep = sleep
        self.clock = clock or utc_now

    def dispatch(
        self,
        recipients: List[Recipient],
        notification: OutboundNotification,
        heartbeat: Optional[Callable[[], None]] = None,
    ) -> DispatchResult:
        """`heartbeat` runs before every batch after the first."""
        result = DispatchResult()
        timestamp = self.clock().isoformat()
        for number, batch in enumerate(chunked(recipients, self.batch_size), start=1):
            if heartbeat is not None and number > 1:
                heartbeat()
            result.batch_count += 1
            messages = [build_message(notification, r, timestamp) for r in batch]
            try:
                tickets = self._send_with_retry(messages)
            except PushGatewayError as exc:
                logger.error(f"Failed to send batch {number} ({len(batch)} recipients): {exc}")
                result.transport_errors.append(str(exc))
                result.outcomes.extend(RecipientOutcome(r, FAILURE, str(exc)) for r in batch)
                continue

            if not isinstance(tickets, list):
                tickets = []
            for index, recipient in enumerate(batch):
                ticket = tickets[index] if index < len(tickets) else None
                result.outcomes.append(classify_ticket(recipient, ticket))
        return result

    def _send_with_retry(self, messages: List[dict]) -> List[dict]:
        attempt = 1
        while True:
            try:
                return self.gateway.send(messages)
            except PushGatewayError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    raise
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Push batch attempt {attempt}/{self.max_attempts} failed: {exc}; "
                    f"retrying in {delay:.1f}s"
                )
                self.sleep(delay)
                attempt += 1
