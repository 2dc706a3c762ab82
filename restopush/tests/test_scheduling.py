from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException

from conftest import BERLIN, berlin, seed_scheduled
from restopush.database import as_utc
from restopush.models.catalog import Event, MenuItem, OfferItem, OfferWeek
from restopush.models.notification import NotificationType, ScheduledNotification
from restopush.services.scheduling import (
    CustomNotificationScheduler,
    EventReminderScheduler,
    WeeklyOfferScheduler,
    event_reminder_time,
    next_monday,
)


def _seed_week(db, theme="Burger Week", names=("Classic Burger", "Veggie Burger"), active=True):
    week = OfferWeek(week_number=23, week_theme=theme, is_active=active)
    db.add(week)
    db.flush()
    for name in names:
        menu_item = MenuItem(name=name)
        db.add(menu_item)
        db.flush()
        db.add(OfferItem(week_id=week.id, menu_item_id=menu_item.id, special_price=Decimal("9.90")))
    db.commit()
    return week


def _seed_event(db, event_date, title="Jazz Night", location="Terrace"):
    event = Event(title=title, date=event_date, location=location)
    db.add(event)
    db.commit()
    return event


def _rows(db, type):
    db.expire_all()
    return db.query(ScheduledNotification).filter(ScheduledNotification.type == type).all()


def test_next_monday():
    wednesday = datetime(2026, 6, 3, 9, tzinfo=BERLIN)
    assert next_monday(wednesday, 10) == datetime(2026, 6, 8, 10, tzinfo=BERLIN)
    monday = datetime(2026, 6, 8, 7, tzinfo=BERLIN)
    assert next_monday(monday, 10) == datetime(2026, 6, 8, 10, tzinfo=BERLIN)


def test_event_reminder_time_is_evening_before():
    assert event_reminder_time(date(2026, 6, 5), BERLIN) == datetime(2026, 6, 4, 18, tzinfo=BERLIN)


def test_weekly_offer_scheduled_for_next_monday_morning(db_session):
    week = _seed_week(db_session)
    scheduler = WeeklyOfferScheduler(db_session, clock=lambda: berlin(2026, 6, 3, 9))

    assert scheduler.schedule() == 1

    rows = _rows(db_session, NotificationType.WEEKLY_OFFER)
    assert len(rows) == 1
    row = rows[0]
    assert as_utc(row.scheduled_for) == berlin(2026, 6, 8, 10)
    assert row.title == "Burger Week is here!"
    assert "Classic Burger" in row.body and "Veggie Burger" in row.body
    assert row.data == {
        "week_id": week.id,
        "week_theme": "Burger Week",
        "screen": "menu",
        "filter": "offers",
        "item_count": 2,
    }
    assert row.target_audience == {"all": True}
    assert row.sent is False


def test_weekly_offer_is_not_scheduled_twice(db_session):
    _seed_week(db_session)
    scheduler = WeeklyOfferScheduler(db_session, clock=lambda: berlin(2026, 6, 3, 9))

    assert scheduler.schedule() == 1
    assert scheduler.schedule() == 0
    assert len(_rows(db_session, NotificationType.WEEKLY_OFFER)) == 1


def test_weekly_offer_skipped_when_monday_is_too_close(db_session):
    _seed_week(db_session)
    scheduler = WeeklyOfferScheduler(db_session, clock=lambda: berlin(2026, 6, 8, 9, 30))
    assert scheduler.schedule() == 0
    assert _rows(db_session, NotificationType.WEEKLY_OFFER) == []


def test_weekly_offer_needs_active_week_with_items(db_session):
    _seed_week(db_session, active=False)
    _seed_week(db_session, theme="Empty Week", names=())
    scheduler = WeeklyOfferScheduler(db_session, clock=lambda: berlin(2026, 6, 3, 9))
    assert scheduler.schedule() == 0


def test_single_item_body(db_session):
    _seed_week(db_session, theme="Pasta Week", names=("Carbonara",))
    WeeklyOfferScheduler(db_session, clock=lambda: berlin(2026, 6, 3, 9)).schedule()

    row = _rows(db_session, NotificationType.WEEKLY_OFFER)[0]
    assert row.body == "New offer: Carbonara - discover it now!"
    assert row.data["item_count"] == 1


def test_custom_named_offer_items_are_used(db_session):
    week = OfferWeek(week_number=1, week_theme="Chef Specials", is_active=True)
    db_session.add(week)
    db_session.flush()
    db_session.add(OfferItem(week_id=week.id, custom_name="Truffle Fries", special_price=Decimal("5")))
    db_session.commit()

    WeeklyOfferScheduler(db_session, clock=lambda: berlin(2026, 6, 3, 9)).schedule()
    assert "Truffle Fries" in _rows(db_session, NotificationType.WEEKLY_OFFER)[0].body


def test_event_reminders_for_upcoming_events(db_session, clock):
    soon = _seed_event(db_session, date(2026, 6, 5), title="Jazz Night")
    tomorrow = _seed_event(db_session, date(2026, 6, 4), title="Wine Tasting", location=None)
    _seed_event(db_session, date(2026, 6, 3), title="Today")  # reminder was yesterday
    _seed_event(db_session, date(2026, 7, 10), title="Far Away")

    assert EventReminderScheduler(db_session, clock=clock).schedule() == 2

    rows = {r.data["event_id"]: r for r in _rows(db_session, NotificationType.EVENT_REMINDER)}
    assert set(rows) == {soon.id, tomorrow.id}
    assert as_utc(rows[soon.id].scheduled_for) == berlin(2026, 6, 4, 18)
    assert as_utc(rows[tomorrow.id].scheduled_for) == berlin(2026, 6, 3, 18)
    assert rows[soon.id].title == "Event reminder!"
    assert '"Jazz Night"' in rows[soon.id].body and "Terrace" in rows[soon.id].body
    assert rows[soon.id].data["screen"] == "events"
    assert rows[soon.id].data["event_date"] == "2026-06-05"


def test_event_reminders_are_deduplicated(db_session, clock, now):
    first = _seed_event(db_session, date(2026, 6, 10))
    second = _seed_event(db_session, date(2026, 6, 12), title="Quiz Night")
    seed_scheduled(db_session, berlin(2026, 6, 9, 18), data={"event_id": first.id})

    scheduler = EventReminderScheduler(db_session, clock=clock)
    assert scheduler.schedule() == 1
    assert scheduler.schedule() == 0

    event_ids = sorted(r.data["event_id"] for r in _rows(db_session, NotificationType.EVENT_REMINDER))
    assert event_ids == [first.id, second.id]


def test_custom_schedule_rejects_past_times(db_session, clock, now):
    scheduler = CustomNotificationScheduler(db_session, clock=clock)
    with pytest.raises(HTTPException) as exc:
        scheduler.schedule("Hi", "There", now)
    assert exc.value.status_code == 400
    assert exc.value.detail == "Schedule time must be in the future"


def test_custom_schedule_accepts_naive_utc_and_audience(db_session, clock):
    scheduler = CustomNotificationScheduler(db_session, clock=clock)
    assert scheduler.schedule(
        "Kitchen closed",
        "We reopen on Friday",
        datetime(2026, 6, 4, 10, 0),
        data={"screen": "home"},
        target_audience={"platform": "ios"},
    ) == 1

    row = _rows(db_session, NotificationType.CUSTOM)[0]
    assert as_utc(row.scheduled_for) == datetime(2026, 6, 4, 10, 0, tzinfo=timezone.utc)
    assert row.data == {"screen": "home"}
    assert row.target_audience == {"platform": "ios"}
