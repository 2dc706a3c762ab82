import logging
from datetime import timedelta
from typing import Callable, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette import status

from restopush.config import settings
from restopush.database import utc_now
from restopush.models.notification import Platform, PushToken

logger = logging.getLogger(__name__)


class PushTokenService:
    def __init__(self, db: Session, clock: Optional[Callable] = None):
        self.db = db
        self.clock = clock or utc_now

    def register(
        self,
        user_id: str,
        token: str,
        platform: Platform,
        device_info: Optional[dict] = None,
        notification_settings: Optional[dict] = None,
    ) -> PushToken:
        """Upsert keyed by token; the user's other tokens on this platform are retired."""
        entry = self.db.query(PushToken).filter(PushToken.token == token).first()
        if not entry:
            entry = PushToken(
                user_id=user_id,
                token=token,
                platform=platform,
                device_info=device_info,
                notification_settings=notification_settings,
                is_active=True,
            )
            self.db.add(entry)
        else:
            entry.user_id = user_id
            entry.platform = platform
            entry.is_active = True
            if device_info is not None:
                entry.device_info = device_info
            if notification_settings is not None:
                entry.notification_settings = notification_settings
            entry.updated_at = self.clock()
        self.db.flush()

        retired = (
            self.db.query(PushToken)
            .filter(
                PushToken.user_id == user_id,
                PushToken.platform == platform,
                PushToken.id != entry.id,
                PushToken.is_active.is_(True),
            )
            .update({PushToken.is_active: False, PushToken.updated_at: self.clock()}, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(entry)
        if retired:
            logger.info(f"Deactivated {retired} older {Platform(platform).value} tokens for user {user_id}")
        return entry

    def update_settings(self, user_id: str, notification_settings: dict) -> int:
        tokens = self.db.query(PushToken).filter(PushToken.user_id == user_id).all()
        for t in tokens:
            t.notification_settings = dict(notification_settings)
            t.updated_at = self.clock()
        self.db.commit()
        return len(tokens)

    def deactivate(self, user_id: str, token: str) -> PushToken:
        entry = (
            self.db.query(PushToken)
            .filter(PushToken.token == token, PushToken.user_id == user_id)
            .first()
        )
        if not entry:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Push token not found")
        entry.is_active = False
        entry.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def cleanup_inactive(self, retention_days: Optional[int] = None) -> int:
        """Delete tokens that have been inactive for longer than the retention window."""
        cutoff = self.clock() - timedelta(days=retention_days or settings.TOKEN_RETENTION_DAYS)
        try:
            deleted = (
                self.db.query(PushToken)
                .filter(PushToken.is_active.is_(False), PushToken.updated_at < cutoff)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to clean up inactive push tokens", exc_info=True)
            return 0
        if deleted:
            logger.info(f"Deleted {deleted} inactive push tokens")
        return deleted
