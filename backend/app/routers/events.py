"""Event API routes — exact-location reveal, manual and scheduled."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.verify import current_user_id, require_cron_secret
from app.config import settings
from app.database import get_db
from app.routers.responses import success
from app.schemas.event import LocationUnlock
from app.services import location_service
from app.services.errors import ErrorCode, bad_request

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/unlock-location")
def unlock_location(
    payload: LocationUnlock,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """Reveal the exact location to attendees. Idempotent."""
    event_id = (payload.event_id or "").strip()
    if not event_id:
        raise bad_request(ErrorCode.MISSING_EVENT_ID, "eventId is required")

    result = location_service.unlock_location(db, event_id, user_id)
    return success(
        result.warnings,
        alreadyUnlocked=result.already_unlocked,
        attendeeCount=result.attendee_count,
    )


@router.post("/unlock-due", dependencies=[Depends(require_cron_secret)])
def unlock_due(db: Session = Depends(get_db)):
    summary = location_service.unlock_due_events(db, settings.LOCATION_UNLOCK_LEAD_MINUTES)
    return success(
        processed=summary.processed,
        unlocked=len(summary.unlocked),
        ids=summary.unlocked,
        skipped=summary.skipped,
        errors=summary.errors,
    )
