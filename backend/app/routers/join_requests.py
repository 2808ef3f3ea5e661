"""Join request API routes — submit, approve, reject."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.verify import current_user_id
from app.database import get_db
from app.routers.responses import success
from app.schemas.join_request import JoinRequestDecision, JoinRequestOut, JoinRequestSubmit
from app.services import join_request_service
from app.services.errors import ErrorCode, bad_request

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_request_id(payload: JoinRequestDecision) -> str:
    request_id = (payload.request_id or "").strip()
    if not request_id:
        raise bad_request(ErrorCode.MISSING_REQUEST_ID, "requestId is required")
    return request_id


@router.post("")
def submit_join_request(
    payload: JoinRequestSubmit,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """Ask to join an event; the request starts pending and the host is notified."""
    event_id = (payload.event_id or "").strip()
    if not event_id:
        raise bad_request(ErrorCode.MISSING_EVENT_ID, "eventId is required")

    result = join_request_service.submit_join_request(db, event_id, user_id, payload.message)
    return success(
        result.warnings,
        request=JoinRequestOut.model_validate(result.request).model_dump(mode="json"),
    )


@router.post("/approve")
def approve_join_request(
    payload: JoinRequestDecision,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    """Host approves a pending request; the requester becomes an attendee."""
    request_id = _require_request_id(payload)
    result = join_request_service.approve_join_request(db, request_id, user_id)
    return success(
        result.warnings,
        newAttendeeCount=result.new_attendee_count,
        capacity=result.capacity,
    )


@router.post("/reject")
def reject_join_request(
    payload: JoinRequestDecision,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    request_id = _require_request_id(payload)
    result = join_request_service.reject_join_request(db, request_id, user_id, payload.note)
    return success(result.warnings)
