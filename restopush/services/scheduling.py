import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette import status

from restopush.config import settings
from restopush.database import as_utc, utc_now
from restopush.models.catalog import Event, OfferItem, OfferWeek
from restopush.models.notification import (
    NotificationStatus,
    NotificationType,
    ScheduledNotification,
)
from restopush.services.audience import normalize_audience

logger = logging.getLogger(__name__)

WEEKLY_OFFER_HOUR = 10
EVENT_REMINDER_HOUR = 18
DEDUP_WINDOW = timedelta(hours=1)
MIN_LEAD_TIME = timedelta(hours=1)
EVENT_LOOKAHEAD_DAYS = 30
MAX_WEEKLY_ITEMS = 5
MAX_SAMPLE_ITEMS = 3


def next_monday(local_now: datetime, hour: int) -> datetime:
    """Monday at `hour` local time; on a Monday this is the same day."""
    days_ahead = (7 - local_now.weekday()) % 7
    target_day = local_now.date() + timedelta(days=days_ahead)
    return datetime.combine(target_day, time(hour), tzinfo=local_now.tzinfo)


def event_reminder_time(event_date: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(event_date - timedelta(days=1), time(EVENT_REMINDER_HOUR), tzinfo=tz)


class _Scheduler:
    def __init__(
        self,
        db: Session,
        clock: Optional[Callable] = None,
        timezone_name: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock or utc_now
        self.tz = ZoneInfo(timezone_name or settings.RESTAURANT_TIMEZONE)

    def _insert(self, **fields) -> ScheduledNotification:
        row = ScheduledNotification(
            sent=False, status=NotificationStatus.PENDING, attempts=0, **fields
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row


class WeeklyOfferScheduler(_Scheduler):
    def schedule(self) -> int:
        week = (
            self.db.query(OfferWeek)
            .filter(OfferWeek.is_active.is_(True))
            .order_by(OfferWeek.id.desc())
            .first()
        )
        if not week:
            logger.info("No active week found, skipping weekly offers")
            return 0

        items = (
            self.db.query(OfferItem)
            .filter(OfferItem.week_id == week.id)
            .order_by(OfferItem.id)
            .limit(MAX_WEEKLY_ITEMS)
            .all()
        )
        if not items:
            logger.info(f"No items found for week '{week.week_theme}', skipping")
            return 0

        now = self.clock()
        target = next_monday(now.astimezone(self.tz), WEEKLY_OFFER_HOUR).astimezone(timezone.utc)
        if target - now < MIN_LEAD_TIME:
            logger.info("Next Monday is too close, skipping scheduling")
            return 0

        existing = (
            self.db.query(ScheduledNotification.id)
            .filter(
                ScheduledNotification.type == NotificationType.WEEKLY_OFFER,
                ScheduledNotification.sent.is_(False),
                ScheduledNotification.scheduled_for >= target - DEDUP_WINDOW,
                ScheduledNotification.scheduled_for <= target + DEDUP_WINDOW,
            )
            .first()
        )
        if existing:
            logger.info("Weekly offer notification already scheduled")
            return 0

        samples = [n for n in (item.display_name for item in items[:MAX_SAMPLE_ITEMS]) if n]
        count = len(items)
        if count > 1:
            body = f"{count} new offers are waiting for you: {', '.join(samples)} and more!"
        else:
            body = f"New offer: {samples[0] if samples else 'Special discounts'} - discover it now!"

        try:
            self._insert(
                type=NotificationType.WEEKLY_OFFER,
                title=f"{week.week_theme} is here!",
                body=body,
                data={
                    "week_id": week.id,
                    "week_theme": week.week_theme,
                    "screen": "menu",
                    "filter": "offers",
                    "item_count": count,
                },
                scheduled_for=target,
                target_audience={"all": True},
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to schedule weekly offer notification", exc_info=True)
            raise
        logger.info(f"Scheduled weekly offer notification for {target.isoformat()}")
        return 1


class EventReminderScheduler(_Scheduler):
    def schedule(self) -> int:
        now = self.clock()
        today = now.astimezone(self.tz).date()
        events = (
            self.db.query(Event)
            .filter(
                Event.date >= today,
                Event.date <= today + timedelta(days=EVENT_LOOKAHEAD_DAYS),
            )
            .order_by(Event.date.asc())
            .all()
        )
        if not events:
            logger.info("No upcoming events found")
            return 0

        already_scheduled = self._pending_event_ids()
        scheduled = 0
        for event in events:
            reminder_at = event_reminder_time(event.date, self.tz).astimezone(timezone.utc)
            if reminder_at <= now:
                logger.info(f"Skipping past event: {event.title}")
                continue
            if str(event.id) in already_scheduled:
                logger.info(f"Reminder already scheduled for event: {event.title}")
                continue

            location = f" in {event.location}" if event.location else ""
            try:
                self._insert(
                    type=NotificationType.EVENT_REMINDER,
                    title="Event reminder!",
                    body=(
                        f'Tomorrow is the day: "{event.title}" on '
                        f"{event.date:%A, %d %B %Y}{location}. We look forward to seeing you!"
                    ),
                    data={
                        "event_id": event.id,
                        "event_title": event.title,
                        "event_date": event.date.isoformat(),
                        "event_location": event.location,
                        "screen": "events",
                    },
                    scheduled_for=reminder_at,
                    target_audience={"all": True},
                )
            except SQLAlchemyError:
                self.db.rollback()
                logger.error(f"Failed to schedule reminder for event {event.title}", exc_info=True)
                continue

            already_scheduled.add(str(event.id))
            scheduled += 1
            logger.info(f'Scheduled reminder for event "{event.title}" at {reminder_at.isoformat()}')
        return scheduled

    def _pending_event_ids(self) -> set:
        rows = (
            self.db.query(ScheduledNotification.data)
            .filter(
                ScheduledNotification.type == NotificationType.EVENT_REMINDER,
                ScheduledNotification.sent.is_(False),
            )
            .all()
        )
        return {
            str(r.data["event_id"])
            for r in rows
            if r.data and r.data.get("event_id") is not None
        }


class CustomNotificationScheduler(_Scheduler):
    def schedule(
        self,
        title: str,
        body: str,
        scheduled_for: datetime,
        data: Optional[dict] = None,
        target_audience=None,
    ) -> int:
        scheduled_for = as_utc(scheduled_for)
        if scheduled_for <= self.clock():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Schedule time must be in the future",
            )
        try:
            self._insert(
                type=NotificationType.CUSTOM,
                title=title,
                body=body,
                data=data or {},
                scheduled_for=scheduled_for,
                target_audience=normalize_audience(target_audience) or {"all": True},
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to schedule custom notification", exc_info=True)
            raise
        logger.info(f"Scheduled custom notification for {scheduled_for.isoformat()}")
        return 1
