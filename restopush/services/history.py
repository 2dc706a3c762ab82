from fastapi import HTTPException
from sqlalchemy import desc
from sqlalchemy.orm import Session
from starlette import status

from restopush.models.notification import NotificationHistory


class NotificationHistoryService:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: str, limit: int = 50):
        return (
            self.db.query(NotificationHistory)
            .filter(NotificationHistory.user_id == user_id)
            .order_by(desc(NotificationHistory.sent_at), desc(NotificationHistory.id))
            .limit(max(1, min(limit, 200)))
            .all()
        )

    def _get_owned(self, user_id: str, history_id: int) -> NotificationHistory:
        entry = (
            self.db.query(NotificationHistory)
            .filter(
                NotificationHistory.id == history_id,
                NotificationHistory.user_id == user_id,
            )
            .first()
        )
        if not entry:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
        return entry

    def mark_read(self, user_id: str, history_id: int) -> NotificationHistory:
        entry = self._get_owned(user_id, history_id)
        entry.read = True
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def mark_clicked(self, user_id: str, history_id: int) -> NotificationHistory:
        # opening a notification also reads it
        entry = self._get_owned(user_id, history_id)
        entry.clicked = True
        entry.read = True
        self.db.commit()
        self.db.refresh(entry)
        return entry
