import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from restopush.models.notification import NotificationType, PushToken

logger = logging.getLogger(__name__)

# notification type -> key in PushToken.notification_settings
PREFERENCE_KEYS = {
    NotificationType.WEEKLY_OFFER: "weeklyOffers",
    NotificationType.EVENT_REMINDER: "eventReminders",
    NotificationType.POINTS_EARNED: "pointsEarned",
    NotificationType.APP_UPDATE: "appUpdates",
}


@dataclass(frozen=True)
class Recipient:
    user_id: str
    token: str
    platform: str
    notification_settings: Optional[dict] = None


def normalize_audience(target_audience: Any) -> dict:
    if target_audience is None:
        return {}
    if hasattr(target_audience, "model_dump"):
        return target_audience.model_dump(exclude_none=True, mode="json")
    return dict(target_audience)


def wants_notification(notification_settings: Optional[dict], notification_type) -> bool:
    """Preference check for one token. Tokens without stored settings get everything."""
    if not notification_settings:
        return True
    key = PREFERENCE_KEYS.get(NotificationType(notification_type))
    if key is None:
        # custom notifications have no opt-out
        return True
    return notification_settings.get(key) is True


class AudienceResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, target_audience, notification_type) -> List[Recipient]:
        audience = normalize_audience(target_audience)
        query = self.db.query(PushToken).filter(PushToken.is_active.is_(True))

        platform = audience.get("platform")
        if platform:
            query = query.filter(PushToken.platform == platform)

        user_ids = audience.get("user_ids")
        if user_ids:
            query = query.filter(PushToken.user_id.in_([str(u) for u in user_ids]))

        tokens = query.order_by(PushToken.id).all()
        recipients = [
            Recipient(
                user_id=t.user_id,
                token=t.token,
                platform=t.platform.value if hasattr(t.platform, "value") else t.platform,
                notification_settings=t.notification_settings,
            )
            for t in tokens
            if wants_notification(t.notification_settings, notification_type)
        ]
        logger.info(
            f"Filtered {len(tokens)} tokens to {len(recipients)} based on preferences "
            f"(type={NotificationType(notification_type).value})"
        )
        return recipients
