from datetime import timedelta

from conftest import auth_headers_for, seed_token
from restopush.models.notification import Platform, PushToken
from restopush.services.push_tokens import PushTokenService


def _register(client, user_id, token, platform="ios", **extra):
    payload = {"token": token, "platform": platform, **extra}
    return client.post("/push/register", headers=auth_headers_for(user_id), json=payload)


def _tokens(db):
    db.expire_all()
    return {t.token: t for t in db.query(PushToken).all()}


def test_register_creates_token(client, db_session):
    r = _register(
        client,
        "u1",
        "ExponentPushToken[a]",
        device_info={"model": "iPhone 15"},
        notification_settings={"weeklyOffers": False},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["user_id"] == "u1"
    assert body["platform"] == "ios"
    assert body["is_active"] is True
    assert body["notification_settings"] == {
        "weeklyOffers": False,
        "eventReminders": True,
        "pointsEarned": True,
        "appUpdates": True,
    }


def test_register_is_an_upsert_on_token(client, db_session):
    _register(client, "u1", "ExponentPushToken[a]", notification_settings={"appUpdates": False})
    r = _register(client, "u2", "ExponentPushToken[a]")
    assert r.status_code == 201

    tokens = _tokens(db_session)
    assert len(tokens) == 1
    assert tokens["ExponentPushToken[a]"].user_id == "u2"
    # settings are kept when the re-registration does not send any
    assert tokens["ExponentPushToken[a]"].notification_settings["appUpdates"] is False


def test_new_token_retires_older_tokens_on_same_platform(client, db_session):
    seed_token(db_session, "u1", token="old-ios", platform=Platform.IOS)
    seed_token(db_session, "u1", token="my-android", platform=Platform.ANDROID)
    seed_token(db_session, "u2", token="other-user-ios", platform=Platform.IOS)

    _register(client, "u1", "new-ios")

    tokens = _tokens(db_session)
    assert tokens["new-ios"].is_active is True
    assert tokens["old-ios"].is_active is False
    assert tokens["my-android"].is_active is True
    assert tokens["other-user-ios"].is_active is True


def test_register_reactivates_token(client, db_session):
    seed_token(db_session, "u1", token="t1", is_active=False)
    assert _register(client, "u1", "t1").json()["is_active"] is True


def test_register_validation(client):
    assert _register(client, "u1", "t1", platform="web").status_code == 422
    assert client.post("/push/register", json={"token": "t1", "platform": "ios"}).status_code == 401


def test_update_settings_applies_to_all_user_tokens(client, db_session):
    seed_token(db_session, "u1", token="t1")
    seed_token(db_session, "u1", token="t2", platform=Platform.ANDROID)
    seed_token(db_session, "u2", token="t3")

    r = client.put(
        "/push/settings",
        headers=auth_headers_for("u1"),
        json={"weeklyOffers": False, "eventReminders": True, "pointsEarned": False, "appUpdates": True},
    )
    assert r.status_code == 200
    assert r.json() == {"ok": True, "updated": 2}

    tokens = _tokens(db_session)
    assert tokens["t1"].notification_settings["weeklyOffers"] is False
    assert tokens["t2"].notification_settings["pointsEarned"] is False
    assert tokens["t3"].notification_settings is None


def test_deactivate_token(client, db_session):
    seed_token(db_session, "u1", token="t1")

    r = client.delete("/push/t1", headers=auth_headers_for("u1"))
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    assert client.delete("/push/t1", headers=auth_headers_for("u2")).status_code == 404
    assert client.delete("/push/missing", headers=auth_headers_for("u1")).status_code == 404


def test_cleanup_inactive_deletes_only_old_inactive_tokens(db_session, clock, now):
    stale = seed_token(db_session, "u1", token="stale", is_active=False)
    fresh = seed_token(db_session, "u2", token="fresh", is_active=False)
    active = seed_token(db_session, "u3", token="active")
    stale.updated_at = now - timedelta(days=45)
    fresh.updated_at = now - timedelta(days=29)
    active.updated_at = now - timedelta(days=200)
    db_session.commit()

    assert PushTokenService(db_session, clock=clock).cleanup_inactive() == 1
    assert set(_tokens(db_session)) == {"fresh", "active"}


def test_cleanup_inactive_with_custom_window(db_session, clock, now):
    token = seed_token(db_session, "u1", token="t1", is_active=False)
    token.updated_at = now - timedelta(days=8)
    db_session.commit()

    assert PushTokenService(db_session, clock=clock).cleanup_inactive(retention_days=7) == 1
