from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import seed_scheduled
from restopush.database import as_utc
from restopush.models.notification import (
    NotificationDeliveryFailure,
    NotificationHistory,
    NotificationStatus,
    NotificationType,
    ScheduledNotification,
)
from restopush.services.audience import Recipient
from restopush.services.dispatcher import FAILURE, SKIPPED, SUCCESS, OutboundNotification, RecipientOutcome
from restopush.services.recorder import OutcomeRecorder


def _outcomes():
    return [
        RecipientOutcome(Recipient("u1", "t1", "ios"), SUCCESS),
        RecipientOutcome(Recipient("u2", "t2", "android"), SUCCESS),
        RecipientOutcome(Recipient("u3", "t3", "ios"), FAILURE, "DeviceNotRegistered"),
        RecipientOutcome(Recipient("u4", "t4", "ios"), SKIPPED, "Skipped due to quiet hours"),
    ]


def _notification():
    return OutboundNotification(
        type=NotificationType.APP_UPDATE, title="Update", body="New version", data={"screen": "home"}
    )


def test_history_only_for_successful_recipients(db_session, clock):
    summary = OutcomeRecorder(db_session, clock=clock).record(_outcomes(), _notification())

    assert (summary.success_count, summary.failure_count, summary.skipped_count) == (2, 1, 1)
    history = db_session.query(NotificationHistory).order_by(NotificationHistory.user_id).all()
    assert [h.user_id for h in history] == ["u1", "u2"]
    assert history[0].type == NotificationType.APP_UPDATE
    assert history[0].data == {"screen": "home"}
    assert history[0].read is False and history[0].clicked is False


def test_failures_are_persisted_but_skips_are_not(db_session, clock, now):
    row = seed_scheduled(db_session, now)
    OutcomeRecorder(db_session, clock=clock).record(
        _outcomes(), _notification(), scheduled_notification_id=row.id
    )

    failures = db_session.query(NotificationDeliveryFailure).all()
    assert len(failures) == 1
    assert failures[0].user_id == "u3"
    assert failures[0].error == "DeviceNotRegistered"
    assert failures[0].scheduled_notification_id == row.id


def test_failure_persistence_can_be_disabled(db_session, clock):
    OutcomeRecorder(db_session, record_failures=False, clock=clock).record(_outcomes(), _notification())
    assert db_session.query(NotificationDeliveryFailure).count() == 0


def test_history_insert_failure_is_logged_not_raised(db_session, clock, monkeypatch, caplog):
    def broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(db_session, "commit", broken_commit)
    summary = OutcomeRecorder(db_session, clock=clock).record(_outcomes(), _notification())

    assert summary.success_count == 2
    assert "Failed to save 2 notification history rows" in caplog.text


@pytest.mark.parametrize(
    "mark, args, status, error",
    [
        ("mark_sent", (5,), NotificationStatus.SENT, None),
        ("mark_failed", ("boom",), NotificationStatus.FAILED, "boom"),
        ("mark_skipped", ("Too old to send",), NotificationStatus.SKIPPED, "Skipped: Too old to send"),
    ],
)
def test_terminal_marks(db_session, clock, now, mark, args, status, error):
    row = seed_scheduled(db_session, now)
    assert getattr(OutcomeRecorder(db_session, clock=clock), mark)(row, *args) is True

    db_session.expire_all()
    stored = db_session.get(ScheduledNotification, row.id)
    assert stored.sent is True
    assert stored.status == status
    assert stored.error == error
    assert stored.sent_count == (5 if mark == "mark_sent" else 0)
    assert as_utc(stored.sent_at) == now


def test_status_write_failure_is_best_effort(db_session, clock, now, monkeypatch):
    row = seed_scheduled(db_session, now)

    def broken_commit():
        raise OperationalError("UPDATE", {}, Exception("locked"))

    monkeypatch.setattr(db_session, "commit", broken_commit)
    assert OutcomeRecorder(db_session, clock=clock).mark_sent(row, 1) is False


def test_cleanup_deletes_only_old_terminal_rows(db_session, clock, now):
    old = seed_scheduled(db_session, now - timedelta(days=100), sent=True,
                         status=NotificationStatus.SENT, sent_at=now - timedelta(days=91))
    recent = seed_scheduled(db_session, now - timedelta(days=10), sent=True,
                            status=NotificationStatus.FAILED, sent_at=now - timedelta(days=89))
    pending = seed_scheduled(db_session, now - timedelta(days=100))
    old_id, recent_id, pending_id = old.id, recent.id, pending.id

    deleted = OutcomeRecorder(db_session, clock=clock).cleanup()

    assert deleted == 1
    remaining = {r.id for r in db_session.query(ScheduledNotification).all()}
    assert remaining == {recent_id, pending_id}
    assert old_id not in remaining
