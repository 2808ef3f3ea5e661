"""Notification API routes — enqueue, worker cycle and operator recovery."""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.auth.verify import require_admin_secret, require_cron_secret, require_enqueue_secret
from app.config import settings
from app.database import get_db
from app.routers.bodies import parsed_body
from app.routers.responses import success
from app.schemas.notification import NotificationEnqueue, QueueAdminAction, QueueItemOut
from app.services import notification_queue, notify_worker
from app.services.copywriter import NoticeCopywriter, get_copywriter
from app.services.errors import ErrorCode, bad_request, workflow_error
from app.services.mailer import Mailer, get_mailer
from app.services.recipients import ProfileDirectory, get_directory

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/enqueue", dependencies=[Depends(require_enqueue_secret)])
def enqueue_notification(
    payload: NotificationEnqueue = Depends(parsed_body(NotificationEnqueue)),
    db: Session = Depends(get_db),
):
    try:
        item = notification_queue.enqueue(
            db,
            payload.kind,
            payload.event_id,
            join_request_id=payload.join_request_id,
            requester_id=payload.requester_id,
            user_id=payload.user_id,
            payload=payload.payload,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Enqueue of %s for event %s failed: %s", payload.kind.value, payload.event_id, e)
        raise workflow_error(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_ERROR, "insert_failed")
    return success(id=item.queue_id)


@router.post("/worker", dependencies=[Depends(require_cron_secret)])
def run_worker(
    db: Session = Depends(get_db),
    copywriter: NoticeCopywriter = Depends(get_copywriter),
    mailer: Mailer = Depends(get_mailer),
    directory: ProfileDirectory = Depends(get_directory),
):
    """Process one batch of queued notifications."""
    result = notify_worker.process_batch(
        db,
        copywriter,
        mailer,
        directory,
        batch_size=settings.WORKER_BATCH_SIZE,
        max_attempts=settings.WORKER_MAX_ATTEMPTS,
        app_base_url=settings.APP_BASE_URL,
    )
    return success(**result)


@router.post("/admin", dependencies=[Depends(require_admin_secret)])
def queue_admin(
    payload: QueueAdminAction = Depends(parsed_body(QueueAdminAction)),
    db: Session = Depends(get_db),
):
    """Operator view and manual recovery over the queue."""
    if payload.action == "peek":
        summary, recent = notification_queue.peek(db, payload.limit)
        return success(
            summary=summary,
            recent=[QueueItemOut.model_validate(item).model_dump(mode="json") for item in recent],
        )

    if payload.action == "requeue_failed":
        ids = notification_queue.requeue_failed(
            db,
            kind=payload.kind,
            event_id=payload.event_id,
            since_hours=payload.since_hours,
            limit=payload.limit,
            reset_attempts=payload.reset_attempts,
        )
        return success(requeued=len(ids), ids=ids)

    queue_id = (payload.queue_id or "").strip()
    if not queue_id:
        raise bad_request(ErrorCode.MISSING_ID, "queue_id is required")
    item = notification_queue.requeue_one(db, queue_id, reset_attempts=payload.reset_attempts)
    return success(requeued=1, id=item.queue_id)
