"""Stable error codes and the HTTPException factory used by every service.

Clients map ``code`` to localized text; the remaining keys in ``detail`` are
context (counts, current status) for rendering a precise message.
"""
from typing import Any

from fastapi import HTTPException, status


class ErrorCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_EVENT_ID = "MISSING_EVENT_ID"
    MISSING_REQUEST_ID = "MISSING_REQUEST_ID"
    MISSING_ID = "MISSING_ID"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    QUEUE_ITEM_NOT_FOUND = "QUEUE_ITEM_NOT_FOUND"
    EVENT_PAST = "EVENT_PAST"
    OWN_EVENT = "OWN_EVENT"
    EVENT_FULL = "EVENT_FULL"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    ALREADY_ATTENDING = "ALREADY_ATTENDING"
    REQUEST_NOT_PENDING = "REQUEST_NOT_PENDING"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    NO_EXACT_LOCATION = "NO_EXACT_LOCATION"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    APPROVAL_ROLLBACK_FAILED = "APPROVAL_ROLLBACK_FAILED"


def workflow_error(status_code: int, code: str, message: str, **context: Any) -> HTTPException:
    """Build an HTTPException carrying ``{code, message, **context}`` as its detail."""
    return HTTPException(status_code=status_code, detail={"code": code, "message": message, **context})


def unauthorized(message: str = "Authentication required") -> HTTPException:
    return workflow_error(status.HTTP_401_UNAUTHORIZED, ErrorCode.UNAUTHORIZED, message)


def forbidden(message: str) -> HTTPException:
    return workflow_error(status.HTTP_403_FORBIDDEN, ErrorCode.FORBIDDEN, message)


def bad_request(code: str, message: str, **context: Any) -> HTTPException:
    return workflow_error(status.HTTP_400_BAD_REQUEST, code, message, **context)


def not_found(code: str, message: str) -> HTTPException:
    return workflow_error(status.HTTP_404_NOT_FOUND, code, message)
