from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from restopush.models.notification import NotificationType, Platform


class TargetAudience(BaseModel):
    """Which users/platforms a notification goes to. Empty means everyone."""

    all: Optional[bool] = None
    user_ids: Optional[List[str]] = None
    platform: Optional[Platform] = None

    model_config = ConfigDict(extra="ignore")


class NotificationSettings(BaseModel):
    weeklyOffers: bool = True
    eventReminders: bool = True
    pointsEarned: bool = True
    appUpdates: bool = True


class SendNotificationRequest(BaseModel):
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    image_url: Optional[str] = None
    target_audience: TargetAudience = Field(default_factory=lambda: TargetAudience(all=True))
    badge: Optional[int] = Field(None, ge=0)
    sound: Optional[str] = None


class DeliveryDetail(BaseModel):
    user_id: str
    token: str
    success: bool
    error: Optional[str] = None


class SendNotificationResponse(BaseModel):
    success: bool
    message: str
    sent_count: int
    failed_count: int
    skipped_count: int = 0
    details: List[DeliveryDetail] = []


class CustomNotification(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    target_audience: TargetAudience = Field(default_factory=lambda: TargetAudience(all=True))


class ScheduleRequest(BaseModel):
    type: Literal["weekly_offers", "event_reminders", "custom"]
    schedule_time: Optional[datetime] = None
    custom_notification: Optional[CustomNotification] = None


class ScheduleResponse(BaseModel):
    success: bool
    message: str
    type: str
    scheduled_count: int


class CronResponse(BaseModel):
    success: bool
    message: str
    processed: int
    sent: int
    failed: int
    skipped: int
    errors: List[str] = []
    execution_time_ms: int
    timestamp: datetime


class PushTokenRegister(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)
    platform: Platform
    device_info: Optional[dict[str, Any]] = None
    notification_settings: Optional[NotificationSettings] = None


class PushTokenResponse(BaseModel):
    id: int
    user_id: str
    token: str
    platform: Platform
    is_active: bool
    notification_settings: Optional[dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationHistoryResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    body: str
    data: dict[str, Any] = {}
    sent_at: Optional[datetime] = None
    read: bool
    clicked: bool

    model_config = ConfigDict(from_attributes=True)


class NotificationStatsResponse(BaseModel):
    total_users_with_tokens: int
    active_tokens_count: int
    pending_scheduled_notifications: int
    sent_notifications_today: int
