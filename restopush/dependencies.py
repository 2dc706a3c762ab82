from datetime import datetime
from typing import Annotated, Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from restopush.database import SessionLocal, utc_now
from restopush.services.auth_service import get_current_user, require_service_role
from restopush.services.push_gateway import ExpoPushClient


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_push_gateway():
    client = ExpoPushClient()
    try:
        yield client
    finally:
        client.close()


def get_clock() -> Callable[[], datetime]:
    return utc_now


db_dependency = Annotated[Session, Depends(get_db)]
gateway_dependency = Annotated[ExpoPushClient, Depends(get_push_gateway)]
clock_dependency = Annotated[Callable[[], datetime], Depends(get_clock)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
ServiceCaller = Annotated[dict, Depends(require_service_role)]
