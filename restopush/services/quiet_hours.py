from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from restopush.config import settings
from restopush.database import as_utc, utc_now
from restopush.models.notification import NotificationType

QUIET_HOURS_REASON = "Skipped due to quiet hours"


class QuietHoursGate:
    """Blocks non-urgent notifications during the restaurant's local night.

    The window wraps midnight: with the defaults (21, 11) hours 21..23 and
    0..10 are quiet. Custom notifications are treated as manual/urgent and
    always pass.
    """

    def __init__(
        self,
        timezone_name: Optional[str] = None,
        start_hour: Optional[int] = None,
        end_hour: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.tz = ZoneInfo(timezone_name or settings.RESTAURANT_TIMEZONE)
        self.start_hour = settings.QUIET_HOURS_START if start_hour is None else start_hour
        self.end_hour = settings.QUIET_HOURS_END if end_hour is None else end_hour
        self.clock = clock or utc_now

    def local_time(self, now: Optional[datetime] = None) -> datetime:
        return as_utc(now or self.clock()).astimezone(self.tz)

    def is_quiet(self, now: Optional[datetime] = None) -> bool:
        hour = self.local_time(now).hour
        if self.start_hour > self.end_hour:
            return hour >= self.start_hour or hour < self.end_hour
        return self.start_hour <= hour < self.end_hour

    def allows(self, notification_type, now: Optional[datetime] = None) -> bool:
        if NotificationType(notification_type) == NotificationType.CUSTOM:
            return True
        return not self.is_quiet(now)
