from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Enum as SqlEnum,
)
from restopush.database import Base, utc_now
import enum


class NotificationType(str, enum.Enum):
    WEEKLY_OFFER = "weekly_offer"
    EVENT_REMINDER = "event_reminder"
    POINTS_EARNED = "points_earned"
    APP_UPDATE = "app_update"
    CUSTOM = "custom"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class Platform(str, enum.Enum):
    IOS = "ios"
    ANDROID = "android"


def _enum_column(enum_cls, **kwargs):
    return Column(
        SqlEnum(
            enum_cls,
            values_callable=lambda obj: [e.value for e in obj],
            native_enum=False,
        ),
        **kwargs,
    )


class ScheduledNotification(Base):
    __tablename__ = "scheduled_notifications"
    id = Column(Integer, primary_key=True, index=True)
    type = _enum_column(NotificationType, nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")
    body = Column(Text, nullable=False, default="")
    data = Column(JSON, nullable=False, default=dict)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    target_audience = Column(JSON, nullable=False, default=lambda: {"all": True})

    # sent stays true for every terminal status; status says which one
    sent = Column(Boolean, nullable=False, default=False)
    status = _enum_column(
        NotificationStatus, nullable=False, default=NotificationStatus.PENDING
    )
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    sent_count = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("ix_scheduled_notifications_due", "status", "scheduled_for"),
        Index("ix_scheduled_notifications_retention", "sent", "sent_at"),
    )


class PushToken(Base):
    __tablename__ = "push_tokens"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    token = Column(String(255), nullable=False, unique=True)  # ExponentPushToken[...]
    platform = _enum_column(Platform, nullable=False, index=True)
    device_info = Column(JSON, nullable=True)
    # {"weeklyOffers": bool, "eventReminders": bool, "pointsEarned": bool, "appUpdates": bool}
    notification_settings = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class NotificationHistory(Base):
    __tablename__ = "notification_history"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = _enum_column(NotificationType, nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    sent_at = Column(DateTime(timezone=True), default=utc_now)
    read = Column(Boolean, nullable=False, default=False)
    clicked = Column(Boolean, nullable=False, default=False)


class NotificationDeliveryFailure(Base):
    __tablename__ = "notification_delivery_failures"
    id = Column(Integer, primary_key=True, index=True)
    scheduled_notification_id = Column(
        Integer,
        ForeignKey("scheduled_notifications.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = Column(String(64), nullable=False, index=True)
    token = Column(String(255), nullable=False)
    type = _enum_column(NotificationType, nullable=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
