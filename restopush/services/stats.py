from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from restopush.config import settings
from restopush.database import utc_now
from restopush.models.notification import NotificationHistory, PushToken, ScheduledNotification


class NotificationStatsService:
    """Counters for the admin console. "Today" is the restaurant's local day."""

    def __init__(self, db: Session, clock: Optional[Callable] = None, timezone_name: Optional[str] = None):
        self.db = db
        self.clock = clock or utc_now
        self.tz = ZoneInfo(timezone_name or settings.RESTAURANT_TIMEZONE)

    def today_bounds(self):
        local_day = self.clock().astimezone(self.tz).date()
        start = datetime.combine(local_day, time(0), tzinfo=self.tz).astimezone(timezone.utc)
        end = datetime.combine(local_day + timedelta(days=1), time(0), tzinfo=self.tz).astimezone(timezone.utc)
        return start, end

    def get_stats(self) -> dict:
        active = self.db.query(PushToken).filter(PushToken.is_active.is_(True))
        start, end = self.today_bounds()
        return {
            "total_users_with_tokens": active.with_entities(
                func.count(func.distinct(PushToken.user_id))
            ).scalar(),
            "active_tokens_count": active.count(),
            "pending_scheduled_notifications": self.db.query(ScheduledNotification)
            .filter(ScheduledNotification.sent.is_(False))
            .count(),
            "sent_notifications_today": self.db.query(NotificationHistory)
            .filter(NotificationHistory.sent_at >= start, NotificationHistory.sent_at < end)
            .count(),
        }
