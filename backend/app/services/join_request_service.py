"""Join request workflow — submit, approve and reject.

Approval is the only multi-row write: the status transition and the attendee
insert commit together or not at all. Notifications are enqueued only after
the business transition has committed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.attendee import Attendee
from app.models.event import Event
from app.models.join_request import JoinRequest, RequestStatus, can_transition
from app.models.notification import NotificationKind
from app.services.errors import ErrorCode, bad_request, forbidden, not_found, workflow_error
from app.services.notification_queue import enqueue_best_effort

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    request: JoinRequest
    warnings: list[str] = field(default_factory=list)


@dataclass
class ApprovalResult:
    request: JoinRequest
    new_attendee_count: int
    capacity: int
    warnings: list[str] = field(default_factory=list)


@dataclass
class RejectResult:
    request: JoinRequest
    warnings: list[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def attendee_count(db: Session, event_id: str) -> int:
    return db.scalar(select(func.count()).select_from(Attendee).where(Attendee.event_id == event_id)) or 0


def is_attendee(db: Session, event_id: str, user_id: str) -> bool:
    return db.scalar(
        select(Attendee.attendee_id).where(Attendee.event_id == event_id, Attendee.user_id == user_id)
    ) is not None


def _get_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise not_found(ErrorCode.EVENT_NOT_FOUND, "Event not found")
    return event


def _get_request(db: Session, request_id: str) -> JoinRequest:
    jr = db.get(JoinRequest, request_id)
    if jr is None:
        raise not_found(ErrorCode.REQUEST_NOT_FOUND, "Join request not found")
    return jr


def _not_pending(current: RequestStatus) -> HTTPException:
    return bad_request(
        ErrorCode.REQUEST_NOT_PENDING,
        "Join request is no longer pending",
        currentStatus=current.value,
    )


def _existing_request(db: Session, event_id: str, requester_id: str) -> Optional[JoinRequest]:
    return (
        db.query(JoinRequest)
        .filter(JoinRequest.event_id == event_id, JoinRequest.requester_id == requester_id)
        .first()
    )


def submit_join_request(
    db: Session,
    event_id: str,
    requester_id: str,
    message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubmitResult:
    event = _get_event(db, event_id)

    if event.host_user_id == requester_id:
        raise workflow_error(status.HTTP_403_FORBIDDEN, ErrorCode.OWN_EVENT, "You cannot join your own event")

    if event.has_started(now):
        raise bad_request(ErrorCode.EVENT_PAST, "This event has already started")

    existing = _existing_request(db, event_id, requester_id)
    if existing is not None:
        raise bad_request(
            ErrorCode.DUPLICATE_REQUEST,
            "You already have a request for this event",
            existingStatus=existing.status.value,
        )

    if is_attendee(db, event_id, requester_id):
        raise bad_request(ErrorCode.ALREADY_ATTENDING, "You are already attending this event")

    current = attendee_count(db, event_id)
    if current >= event.capacity:
        raise bad_request(
            ErrorCode.EVENT_FULL,
            "This event is full",
            capacity=event.capacity,
            currentAttendees=current,
        )

    jr = JoinRequest(
        event_id=event_id,
        requester_id=requester_id,
        status=RequestStatus.pending,
        message=(message or "").strip() or None,
    )
    db.add(jr)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent submit for the same pair.
        db.rollback()
        existing = _existing_request(db, event_id, requester_id)
        raise bad_request(
            ErrorCode.DUPLICATE_REQUEST,
            "You already have a request for this event",
            existingStatus=existing.status.value if existing else RequestStatus.pending.value,
        )
    db.refresh(jr)
    logger.info("Join request %s submitted by %s for event %s", jr.request_id, requester_id, event_id)

    warnings = enqueue_best_effort(
        db,
        NotificationKind.request_created,
        event_id,
        join_request_id=jr.request_id,
        requester_id=requester_id,
        user_id=event.host_user_id,
    )
    return SubmitResult(request=jr, warnings=warnings)


def _rollback_approval(db: Session, request_id: str) -> None:
    try:
        db.rollback()
    except SQLAlchemyError as e:
        logger.critical(
            "Rollback of approval for join request %s failed; state may be inconsistent: %s",
            request_id,
            e,
        )
        raise workflow_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCode.APPROVAL_ROLLBACK_FAILED,
            "Approval failed and could not be rolled back",
        ) from e


def _approve_in_transaction(
    db: Session, request_id: str, acting_user_id: str, now: Optional[datetime]
) -> tuple[JoinRequest, Event, int]:
    jr = _get_request(db, request_id)

    # Row lock on the event serializes concurrent approvals for it.
    event = db.execute(
        select(Event).where(Event.event_id == jr.event_id).with_for_update()
    ).scalar_one_or_none()
    if event is None:
        raise not_found(ErrorCode.EVENT_NOT_FOUND, "Event not found")

    if event.host_user_id != acting_user_id:
        raise forbidden("Only the host can approve join requests")

    if not can_transition(jr.status, RequestStatus.approved):
        raise _not_pending(jr.status)

    if event.has_started(now):
        raise bad_request(ErrorCode.EVENT_PAST, "This event has already started")

    if is_attendee(db, event.event_id, jr.requester_id):
        raise bad_request(ErrorCode.ALREADY_ATTENDING, "Requester is already attending this event")

    claimed = db.execute(
        update(JoinRequest)
        .where(JoinRequest.request_id == request_id, JoinRequest.status == RequestStatus.pending)
        .values(status=RequestStatus.approved, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if claimed != 1:
        db.refresh(jr)
        raise _not_pending(jr.status)

    # Counted after our first write so a concurrent approval is visible.
    current = attendee_count(db, event.event_id)
    if current >= event.capacity:
        raise bad_request(
            ErrorCode.CAPACITY_EXCEEDED,
            "Event is at capacity",
            capacity=event.capacity,
            currentAttendees=current,
        )

    db.add(Attendee(event_id=event.event_id, user_id=jr.requester_id))
    try:
        db.flush()
    except IntegrityError:
        raise bad_request(ErrorCode.ALREADY_ATTENDING, "Requester is already attending this event")

    db.commit()
    db.refresh(jr)
    return jr, event, current + 1


def approve_join_request(
    db: Session,
    request_id: str,
    acting_user_id: str,
    now: Optional[datetime] = None,
) -> ApprovalResult:
    """Approve a pending request and seat the requester in one transaction."""
    try:
        jr, event, new_count = _approve_in_transaction(db, request_id, acting_user_id, now)
    except HTTPException:
        _rollback_approval(db, request_id)
        raise
    except SQLAlchemyError as e:
        _rollback_approval(db, request_id)
        logger.error("Approval of join request %s failed: %s", request_id, e)
        raise workflow_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCode.INTERNAL_ERROR,
            "Approval could not be completed",
        ) from e

    logger.info(
        "Join request %s approved; event %s now has %d/%d attendees",
        request_id, event.event_id, new_count, event.capacity,
    )
    warnings = enqueue_best_effort(
        db,
        NotificationKind.approved,
        event.event_id,
        join_request_id=jr.request_id,
        requester_id=jr.requester_id,
        user_id=jr.requester_id,
    )
    return ApprovalResult(request=jr, new_attendee_count=new_count, capacity=event.capacity, warnings=warnings)


def reject_join_request(
    db: Session,
    request_id: str,
    acting_user_id: str,
    note: Optional[str] = None,
) -> RejectResult:
    jr = _get_request(db, request_id)
    event = _get_event(db, jr.event_id)

    if event.host_user_id != acting_user_id:
        raise forbidden("Only the host can reject join requests")

    if not can_transition(jr.status, RequestStatus.rejected):
        raise _not_pending(jr.status)

    note = (note or "").strip() or None
    rejected = db.execute(
        update(JoinRequest)
        .where(JoinRequest.request_id == request_id, JoinRequest.status == RequestStatus.pending)
        .values(status=RequestStatus.rejected, rejection_note=note, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if rejected != 1:
        db.rollback()
        db.refresh(jr)
        raise _not_pending(jr.status)
    db.commit()
    db.refresh(jr)
    logger.info("Join request %s rejected by host %s", request_id, acting_user_id)

    warnings = enqueue_best_effort(
        db,
        NotificationKind.rejected,
        event.event_id,
        join_request_id=jr.request_id,
        requester_id=jr.requester_id,
        user_id=jr.requester_id,
        payload={"note": note} if note else None,
    )
    return RejectResult(request=jr, warnings=warnings)
