import logging
import time

from fastapi import APIRouter, HTTPException, Query, Request
from starlette import status

from restopush.dependencies import (
    CurrentUser,
    ServiceCaller,
    clock_dependency,
    db_dependency,
    gateway_dependency,
)
from restopush.limits import limiter
from restopush.schemas.notification import (
    CronResponse,
    NotificationHistoryResponse,
    NotificationStatsResponse,
    ScheduleRequest,
    ScheduleResponse,
    SendNotificationRequest,
    SendNotificationResponse,
)
from restopush.services.dispatcher import OutboundNotification
from restopush.services.history import NotificationHistoryService
from restopush.services.processor import DueNotificationProcessor
from restopush.services.scheduling import (
    CustomNotificationScheduler,
    EventReminderScheduler,
    WeeklyOfferScheduler,
)
from restopush.services.sender import NotificationSender
from restopush.services.stats import NotificationStatsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post("/send", status_code=status.HTTP_200_OK, response_model=SendNotificationResponse)
@limiter.limit("30/minute")
def send_notification(
    payload: SendNotificationRequest,
    request: Request,
    db: db_dependency,
    gateway: gateway_dependency,
    clock: clock_dependency,
    caller: ServiceCaller,
):
    logger.info(
        f"Processing notification request: type={payload.type.value} title={payload.title!r}"
    )
    data = dict(payload.data)
    if payload.image_url:
        data.setdefault("image_url", payload.image_url)
    outbound = OutboundNotification(
        type=payload.type,
        title=payload.title,
        body=payload.body,
        data=data,
        badge=payload.badge,
        sound=payload.sound,
    )
    result = NotificationSender(db, gateway, clock=clock).send(
        outbound, target_audience=payload.target_audience
    )
    return SendNotificationResponse(
        success=result.success,
        message=result.message,
        sent_count=result.sent_count,
        failed_count=result.failed_count,
        skipped_count=result.skipped_count,
        details=result.details,
    )


@router.post("/schedule", status_code=status.HTTP_200_OK, response_model=ScheduleResponse)
def schedule_notifications(
    payload: ScheduleRequest,
    db: db_dependency,
    clock: clock_dependency,
    caller: ServiceCaller,
):
    logger.info(f"Processing schedule request: {payload.type}")
    if payload.type == "weekly_offers":
        count = WeeklyOfferScheduler(db, clock=clock).schedule()
    elif payload.type == "event_reminders":
        count = EventReminderScheduler(db, clock=clock).schedule()
    else:
        if not payload.custom_notification or not payload.schedule_time:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Custom notifications require notification details and schedule_time",
            )
        custom = payload.custom_notification
        count = CustomNotificationScheduler(db, clock=clock).schedule(
            title=custom.title,
            body=custom.body,
            data=custom.data,
            target_audience=custom.target_audience,
            scheduled_for=payload.schedule_time,
        )
    return ScheduleResponse(
        success=True,
        message=f"Scheduled {count} notifications",
        type=payload.type,
        scheduled_count=count,
    )


@router.post("/cron", status_code=status.HTTP_200_OK, response_model=CronResponse)
def run_notification_cron(
    db: db_dependency,
    gateway: gateway_dependency,
    clock: clock_dependency,
    caller: ServiceCaller,
):
    start = time.monotonic()
    logger.info("Starting notification cron job...")
    result = DueNotificationProcessor(db, gateway, clock=clock).run()
    execution_time_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"Cron job completed in {execution_time_ms}ms: processed={result.processed} "
        f"sent={result.sent} failed={result.failed} skipped={result.skipped}"
    )
    return CronResponse(
        success=True,
        message=f"Processed {result.processed} scheduled notifications",
        execution_time_ms=execution_time_ms,
        timestamp=clock(),
        **result.to_dict(),
    )


@router.get("/stats", response_model=NotificationStatsResponse)
def notification_stats(db: db_dependency, clock: clock_dependency, caller: ServiceCaller):
    return NotificationStatsService(db, clock=clock).get_stats()


@router.get("/history", response_model=list[NotificationHistoryResponse])
def list_history(
    db: db_dependency,
    user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
):
    return NotificationHistoryService(db).list_for_user(user["id"], limit=limit)


@router.patch("/history/{history_id}/read", response_model=NotificationHistoryResponse)
def mark_history_read(history_id: int, db: db_dependency, user: CurrentUser):
    return NotificationHistoryService(db).mark_read(user["id"], history_id)


@router.patch("/history/{history_id}/clicked", response_model=NotificationHistoryResponse)
def mark_history_clicked(history_id: int, db: db_dependency, user: CurrentUser):
    return NotificationHistoryService(db).mark_clicked(user["id"], history_id)
