"""Exact-location reveal — host-triggered unlock and the scheduled pre-start unlock."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.event import Event
from app.models.location_unlock_log import LocationUnlockLog, UnlockAction
from app.models.notification import NotificationKind
from app.services.errors import ErrorCode, bad_request, forbidden, not_found
from app.services.join_request_service import attendee_count
from app.services.notification_queue import enqueue_best_effort

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 500


@dataclass
class UnlockResult:
    event_id: str
    already_unlocked: bool
    attendee_count: int
    warnings: list[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _mark_visible(db: Session, event_id: str) -> bool:
    """Flip the flag only if still hidden; False means someone else got there first."""
    result = db.execute(
        update(Event)
        .where(Event.event_id == event_id, Event.exact_location_visible.is_(False))
        .values(exact_location_visible=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _record(db: Session, event_id: str, event_title: Optional[str], action: UnlockAction, details: str) -> None:
    """Append an audit row. A failed write is logged and never fails the unlock."""
    try:
        db.add(LocationUnlockLog(event_id=event_id, event_title=event_title, action=action, details=details))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not record unlock %s for event %s: %s", action.value, event_id, e)


def _announce(db: Session, event_id: str, host_user_id: str) -> list[str]:
    return enqueue_best_effort(
        db,
        NotificationKind.location_unlocked,
        event_id,
        user_id=host_user_id,
    )


def unlock_location(db: Session, event_id: str, acting_user_id: str) -> UnlockResult:
    event = db.get(Event, event_id)
    if event is None:
        raise not_found(ErrorCode.EVENT_NOT_FOUND, "Event not found")

    if event.host_user_id != acting_user_id:
        raise forbidden("Only the host can reveal the exact location")

    if event.exact_location_visible:
        return UnlockResult(
            event_id=event_id,
            already_unlocked=True,
            attendee_count=attendee_count(db, event_id),
        )

    if not (event.place_exact or "").strip():
        raise bad_request(ErrorCode.NO_EXACT_LOCATION, "Set the exact location before revealing it")

    title, host_user_id = event.title, event.host_user_id
    if not _mark_visible(db, event_id):
        return UnlockResult(
            event_id=event_id,
            already_unlocked=True,
            attendee_count=attendee_count(db, event_id),
        )

    logger.info("Exact location for event %s revealed by host", event_id)
    _record(db, event_id, title, UnlockAction.unlocked, "Unlocked by host")
    warnings = _announce(db, event_id, host_user_id)
    return UnlockResult(
        event_id=event_id,
        already_unlocked=False,
        attendee_count=attendee_count(db, event_id),
        warnings=warnings,
    )


@dataclass
class ScheduledUnlockSummary:
    processed: int = 0
    unlocked: list[str] = field(default_factory=list)
    skipped: int = 0
    errors: int = 0


def unlock_due_events(
    db: Session,
    lead_minutes: int,
    now: Optional[datetime] = None,
) -> ScheduledUnlockSummary:
    """Reveal every hidden exact location whose event starts within ``lead_minutes``.

    Candidates are hidden events with an exact location dated no earlier than
    yesterday (stored dates are local, so one day of slack covers every
    timezone). Each candidate gets an audit row: unlocked, skipped when it is
    outside the window or was revealed concurrently, error when the update
    fails. Events that already started are left alone.
    """
    now = now or _utcnow()
    horizon = now + timedelta(minutes=lead_minutes)

    candidates = db.scalars(
        select(Event)
        .where(
            Event.exact_location_visible.is_(False),
            Event.place_exact.isnot(None),
            Event.event_date >= (now - timedelta(days=1)).date(),
        )
        .order_by(Event.event_date, Event.event_time)
    ).all()
    # Plain values only; every commit below expires the ORM instances.
    rows = [
        (e.event_id, e.title, e.host_user_id, e.starts_at_utc(), (e.place_exact or "").strip())
        for e in candidates
    ]

    summary = ScheduledUnlockSummary()
    for event_id, title, host_user_id, starts_at, place_exact in rows:
        summary.processed += 1
        if not place_exact:
            summary.skipped += 1
            _record(db, event_id, title, UnlockAction.skipped, "No exact location set")
            continue
        if not (now < starts_at <= horizon):
            summary.skipped += 1
            _record(db, event_id, title, UnlockAction.skipped, f"Not in {lead_minutes}-minute unlock window")
            continue

        try:
            won = _mark_visible(db, event_id)
        except SQLAlchemyError as e:
            db.rollback()
            summary.errors += 1
            logger.error("Scheduled unlock of event %s failed: %s", event_id, e)
            _record(db, event_id, title, UnlockAction.error, str(e)[:MAX_DETAILS_LENGTH])
            continue
        if not won:
            summary.skipped += 1
            _record(db, event_id, title, UnlockAction.skipped, "Already unlocked")
            continue

        summary.unlocked.append(event_id)
        _record(db, event_id, title, UnlockAction.unlocked, f"Auto-unlocked {lead_minutes} minutes before start")
        _announce(db, event_id, host_user_id)

    logger.info(
        "Scheduled unlock processed %d event(s): %d unlocked, %d skipped, %d errors",
        summary.processed, len(summary.unlocked), summary.skipped, summary.errors,
    )
    return summary
