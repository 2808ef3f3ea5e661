"""Notification worker — claims a batch of queued jobs, renders copy, dispatches mail.

One invocation processes one bounded batch and returns. Claiming is a
conditional ``UPDATE ... WHERE status = 'queued'``; a rowcount of 1 is proof
of ownership, so concurrent invocations never send the same job twice.
Failed jobs stay failed until an operator requeues them.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models.attendee import Attendee
from app.models.event import Event
from app.models.notification import (
    DeliveryStatus,
    NotificationKind,
    NotificationLog,
    NotificationQueueItem,
    QueueStatus,
)
from app.services.copywriter import Notice, NoticeContext, NoticeCopywriter
from app.services.mailer import Mailer
from app.services.recipients import ProfileDirectory, Recipient

logger = logging.getLogger(__name__)

NO_RECIPIENTS = "no_recipients"
MAX_ERROR_LENGTH = 1000

HOST_REQUEST_SUBJECT = "New join request: {title}"
HOST_REQUEST_TEXT = (
    "You received a new join request from {requester} for “{title}”{when}. "
    "Please review it in your host panel."
)

# Fixed confirmation copy for the host; never AI-generated.
HOST_COPY: dict[NotificationKind, tuple[str, str]] = {
    NotificationKind.request_created: (HOST_REQUEST_SUBJECT, HOST_REQUEST_TEXT),
    NotificationKind.approved: (
        "Approved: {requester} for “{title}”",
        "You approved {requester} to join “{title}”{when}.",
    ),
    NotificationKind.rejected: (
        "Rejected: {requester} for “{title}”",
        "You rejected {requester}'s request for “{title}”{when}.",
    ),
    NotificationKind.location_unlocked: (
        "Location unlocked: “{title}”",
        "You revealed the exact location for “{title}”{when}.",
    ),
}


@dataclass
class Delivery:
    recipient: Recipient
    notice: Notice


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def claim(db: Session, queue_id: str) -> bool:
    """Atomically move one item from queued to processing."""
    result = db.execute(
        update(NotificationQueueItem)
        .where(
            NotificationQueueItem.queue_id == queue_id,
            NotificationQueueItem.status == QueueStatus.queued,
        )
        .values(status=QueueStatus.processing, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def claim_batch(db: Session, batch_size: int, max_attempts: int) -> list[str]:
    """Oldest-first candidates, keeping only the ones this invocation won."""
    candidates = db.scalars(
        select(NotificationQueueItem.queue_id)
        .where(
            NotificationQueueItem.status == QueueStatus.queued,
            NotificationQueueItem.attempts < max_attempts,
        )
        .order_by(NotificationQueueItem.created_at.asc())
        .limit(batch_size)
    ).all()
    return [queue_id for queue_id in candidates if claim(db, queue_id)]


def _notice_context(event: Optional[Event], host: Optional[Recipient], requester: Optional[Recipient],
                    host_note: Optional[str] = None) -> NoticeContext:
    return NoticeContext(
        event_title=event.title if event is not None else "the event",
        event_date_time=event.starts_at_label() if event is not None else None,
        host_name=host.name if host else None,
        requester_name=requester.name if requester else None,
        host_note=host_note,
    )


def _host_notice(kind: NotificationKind, ctx: NoticeContext) -> Notice:
    subject, text = HOST_COPY[kind]
    fields = {
        "title": ctx.event_title,
        "requester": ctx.requester_name or "the requester",
        "when": f" ({ctx.event_date_time})" if ctx.event_date_time else "",
    }
    return Notice(subject=subject.format(**fields), text=text.format(**fields), ai_used=False)


def _with_link(notice: Notice, app_base_url: str, event_id: str) -> Notice:
    if not app_base_url:
        return notice
    link = f"{app_base_url.rstrip('/')}/events/{event_id}"
    return replace(notice, text=f"{notice.text}\n\n{link}")


def plan_deliveries(
    db: Session,
    item: NotificationQueueItem,
    copywriter: NoticeCopywriter,
    directory: ProfileDirectory,
    app_base_url: str = "",
) -> list[Delivery]:
    """Resolve recipients for a job and render one notice per recipient group.

    Order is requester, then host, then attendees. The host always gets a
    fixed confirmation of what happened; the requester and attendees get the
    generated notice. With ``app_base_url`` set, every body ends with a link
    to the event page.
    """
    if item.kind not in HOST_COPY:
        raise ValueError(f"Unhandled notification kind: {item.kind}")

    event = db.get(Event, item.event_id)
    host_id = event.host_user_id if event is not None else item.user_id
    host = directory.lookup(host_id) if host_id else None
    requester = directory.lookup(item.requester_id) if item.requester_id else None
    payload = item.payload or {}
    ctx = _notice_context(event, host, requester, host_note=payload.get("note"))

    deliveries = []
    if item.kind != NotificationKind.location_unlocked and requester is not None:
        deliveries.append(Delivery(requester, copywriter.generate(item.kind, ctx)))
    if host is not None:
        deliveries.append(Delivery(host, _host_notice(item.kind, ctx)))
    if item.kind == NotificationKind.location_unlocked:
        user_ids = db.scalars(
            select(Attendee.user_id).where(Attendee.event_id == item.event_id, Attendee.user_id != host_id)
        ).all()
        if user_ids:
            notice = copywriter.generate(item.kind, ctx)
            deliveries.extend(Delivery(directory.lookup(user_id), notice) for user_id in user_ids)

    return [
        Delivery(d.recipient, _with_link(d.notice, app_base_url, item.event_id))
        for d in deliveries
        if d.recipient.email
    ]


def _log(db: Session, item: NotificationQueueItem, recipient: Optional[Recipient], notice: Optional[Notice],
         status: DeliveryStatus, provider_message_id: Optional[str] = None, error: Optional[str] = None) -> None:
    db.add(NotificationLog(
        queue_id=item.queue_id,
        kind=item.kind,
        event_id=item.event_id,
        recipient_user_id=recipient.user_id if recipient else None,
        recipient_email=recipient.email if recipient else None,
        subject=notice.subject if notice else None,
        body=notice.text if notice else None,
        ai_used=notice.ai_used if notice else False,
        provider_message_id=provider_message_id,
        status=status,
        error=error,
    ))


def deliver(
    db: Session,
    item: NotificationQueueItem,
    copywriter: NoticeCopywriter,
    mailer: Mailer,
    directory: ProfileDirectory,
    app_base_url: str = "",
) -> tuple[bool, Optional[str]]:
    """Send every planned delivery. Returns (any_sent, last_error)."""
    deliveries = plan_deliveries(db, item, copywriter, directory, app_base_url)
    if not deliveries:
        _log(db, item, None, None, DeliveryStatus.failed, error=NO_RECIPIENTS)
        return False, NO_RECIPIENTS

    any_sent = False
    errors = []
    for delivery in deliveries:
        if delivery.notice.error:
            logger.info("Queue item %s used template copy: %s", item.queue_id, delivery.notice.error)
        result = mailer.send(delivery.recipient.email, delivery.notice.subject, delivery.notice.text)
        if result.ok:
            any_sent = True
            _log(db, item, delivery.recipient, delivery.notice, DeliveryStatus.sent,
                 provider_message_id=result.provider_message_id)
        else:
            errors.append(result.error)
            _log(db, item, delivery.recipient, delivery.notice, DeliveryStatus.failed, error=result.error)

    return any_sent, "; ".join(dict.fromkeys(e for e in errors if e)) or None


def _finish(db: Session, queue_id: str, sent: bool, error: Optional[str]) -> None:
    values = {"updated_at": _utcnow(), "last_error": error[:MAX_ERROR_LENGTH] if error else None}
    if sent:
        values["status"] = QueueStatus.sent
    else:
        values["status"] = QueueStatus.failed
        values["attempts"] = NotificationQueueItem.attempts + 1
    db.execute(
        update(NotificationQueueItem)
        .where(NotificationQueueItem.queue_id == queue_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def process_batch(
    db: Session,
    copywriter: NoticeCopywriter,
    mailer: Mailer,
    directory: ProfileDirectory,
    batch_size: int = 10,
    max_attempts: int = 3,
    app_base_url: str = "",
) -> dict[str, int]:
    claimed = claim_batch(db, batch_size, max_attempts)
    sent = failed = 0

    for queue_id in claimed:
        item = db.get(NotificationQueueItem, queue_id)
        try:
            ok, error = deliver(db, item, copywriter, mailer, directory, app_base_url)
        except Exception as e:
            # One bad job must not stall the rest of the batch.
            db.rollback()
            logger.exception("Queue item %s crashed during delivery", queue_id)
            ok, error = False, f"{type(e).__name__}: {e}"

        _finish(db, queue_id, ok, error)
        if ok:
            sent += 1
            logger.info("Queue item %s (%s) sent", queue_id, item.kind.value)
        else:
            failed += 1
            logger.warning("Queue item %s (%s) failed: %s", queue_id, item.kind.value, error)

    return {"claimed": len(claimed), "sent": sent, "failed": failed}
