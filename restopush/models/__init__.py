# Import all models so they're registered with Base.metadata
from restopush.models.notification import (
    NotificationDeliveryFailure,
    NotificationHistory,
    PushToken,
    ScheduledNotification,
)
from restopush.models.catalog import Event, MenuItem, OfferItem, OfferWeek

__all__ = [
    "ScheduledNotification",
    "PushToken",
    "NotificationHistory",
    "NotificationDeliveryFailure",
    "Event",
    "MenuItem",
    "OfferItem",
    "OfferWeek",
]
