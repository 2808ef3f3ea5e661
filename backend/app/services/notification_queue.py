"""Notification queue — enqueue plus the operator recovery operations.

Enqueue is called after a business transition has committed; a failure here
is logged and surfaced as a warning, never rolled back into the transition.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.notification import NotificationKind, NotificationQueueItem, QueueStatus
from app.services.errors import ErrorCode, not_found

logger = logging.getLogger(__name__)

ENQUEUE_FAILED_WARNING = "notification_enqueue_failed"

PEEK_LIMIT_DEFAULT, PEEK_LIMIT_MAX = 50, 200
REQUEUE_LIMIT_DEFAULT, REQUEUE_LIMIT_MAX = 100, 1000
SINCE_HOURS_DEFAULT, SINCE_HOURS_MAX = 168, 24 * 365


def enqueue(
    db: Session,
    kind: NotificationKind,
    event_id: str,
    join_request_id: Optional[str] = None,
    requester_id: Optional[str] = None,
    user_id: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> NotificationQueueItem:
    """Insert one queued job with zero attempts and commit it."""
    item = NotificationQueueItem(
        kind=kind,
        event_id=event_id,
        join_request_id=join_request_id,
        requester_id=requester_id,
        user_id=user_id,
        payload=payload or {},
        status=QueueStatus.queued,
        attempts=0,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info("Enqueued %s notification %s for event %s", kind.value, item.queue_id, event_id)
    return item


def enqueue_best_effort(db: Session, kind: NotificationKind, event_id: str, **refs: Any) -> list[str]:
    """Enqueue, returning warnings instead of raising on storage failure."""
    try:
        enqueue(db, kind, event_id, **refs)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not enqueue %s notification for event %s: %s", kind.value, event_id, e)
        return [ENQUEUE_FAILED_WARNING]
    return []


def clamp_int(value: Optional[int], low: int, high: int, default: int) -> int:
    if value is None:
        return default
    return min(max(int(value), low), high)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def status_summary(db: Session) -> dict[str, int]:
    rows = db.execute(
        select(NotificationQueueItem.status, func.count()).group_by(NotificationQueueItem.status)
    ).all()
    counts = {s.value: 0 for s in QueueStatus}
    for status, count in rows:
        counts[QueueStatus(status).value] = count
    return counts


def peek(db: Session, limit: Optional[int] = None) -> tuple[dict[str, int], list[NotificationQueueItem]]:
    """Per-status counts and the most recent items, newest first. Read-only."""
    limit = clamp_int(limit, 1, PEEK_LIMIT_MAX, PEEK_LIMIT_DEFAULT)
    recent = db.scalars(
        select(NotificationQueueItem).order_by(NotificationQueueItem.created_at.desc()).limit(limit)
    ).all()
    return status_summary(db), list(recent)


def requeue_failed(
    db: Session,
    kind: Optional[NotificationKind] = None,
    event_id: Optional[str] = None,
    since_hours: Optional[int] = None,
    limit: Optional[int] = None,
    reset_attempts: bool = False,
    now: Optional[datetime] = None,
) -> list[str]:
    """Move matching failed items back to queued; the window bounds created_at."""
    limit = clamp_int(limit, 1, REQUEUE_LIMIT_MAX, REQUEUE_LIMIT_DEFAULT)
    since_hours = clamp_int(since_hours, 1, SINCE_HOURS_MAX, SINCE_HOURS_DEFAULT)
    since = (now or _utcnow()) - timedelta(hours=since_hours)

    query = (
        select(NotificationQueueItem.queue_id)
        .where(
            NotificationQueueItem.status == QueueStatus.failed,
            NotificationQueueItem.created_at >= since,
        )
        .order_by(NotificationQueueItem.created_at.desc())
        .limit(limit)
    )
    if kind is not None:
        query = query.where(NotificationQueueItem.kind == kind)
    if event_id:
        query = query.where(NotificationQueueItem.event_id == event_id)

    ids = list(db.scalars(query).all())
    if not ids:
        return []

    values: dict[str, Any] = {"status": QueueStatus.queued, "updated_at": _utcnow()}
    if reset_attempts:
        values["attempts"] = 0
    db.execute(
        update(NotificationQueueItem)
        .where(
            NotificationQueueItem.queue_id.in_(ids),
            NotificationQueueItem.status == QueueStatus.failed,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("Requeued %d failed notifications (reset_attempts=%s)", len(ids), reset_attempts)
    return ids


def requeue_one(db: Session, queue_id: str, reset_attempts: bool = False) -> NotificationQueueItem:
    item = db.get(NotificationQueueItem, queue_id)
    if item is None:
        raise not_found(ErrorCode.QUEUE_ITEM_NOT_FOUND, "Queue item not found")

    previous = item.status
    item.status = QueueStatus.queued
    if reset_attempts:
        item.attempts = 0
    db.commit()
    db.refresh(item)
    logger.info("Requeued notification %s (was %s, reset_attempts=%s)", queue_id, previous.value, reset_attempts)
    return item
