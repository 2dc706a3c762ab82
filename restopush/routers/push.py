from fastapi import APIRouter
from starlette import status

from restopush.dependencies import CurrentUser, db_dependency
from restopush.schemas.notification import (
    NotificationSettings,
    PushTokenRegister,
    PushTokenResponse,
)
from restopush.services.push_tokens import PushTokenService

router = APIRouter(prefix="/push", tags=["Push"])


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=PushTokenResponse)
def register_push_token(payload: PushTokenRegister, db: db_dependency, user: CurrentUser):
    """
    payload example:
    { "token": "ExponentPushToken[...]",
      "platform": "ios",
      "notification_settings": {"weeklyOffers": true, ...}  # optional
    }
    """
    return PushTokenService(db).register(
        user_id=user["id"],
        token=payload.token,
        platform=payload.platform,
        device_info=payload.device_info,
        notification_settings=(
            payload.notification_settings.model_dump() if payload.notification_settings else None
        ),
    )


@router.put("/settings", status_code=status.HTTP_200_OK)
def update_notification_settings(payload: NotificationSettings, db: db_dependency, user: CurrentUser):
    updated = PushTokenService(db).update_settings(user["id"], payload.model_dump())
    return {"ok": True, "updated": updated}


@router.delete("/{token}", status_code=status.HTTP_200_OK, response_model=PushTokenResponse)
def deactivate_push_token(token: str, db: db_dependency, user: CurrentUser):
    return PushTokenService(db).deactivate(user["id"], token)
