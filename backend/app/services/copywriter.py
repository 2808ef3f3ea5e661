"""Notice copy generator — AI-written notification text with a template fallback.

``NoticeCopywriter.generate`` never raises: a missing API key, transport
failure, timeout, error status or malformed completion all degrade to the
deterministic template with ``ai_used=False`` and a diagnostic ``error``.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from openai import OpenAI

from app.config import settings
from app.models.notification import NotificationKind

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 360
ELLIPSIS = "…"

SUBJECTS: dict[NotificationKind, str] = {
    NotificationKind.request_created: "Your join request was submitted",
    NotificationKind.approved: "You've been approved to join the event",
    NotificationKind.rejected: "Your join request was updated",
    NotificationKind.location_unlocked: "The exact location has been revealed",
}

SYSTEM_PROMPT = (
    "You are a helpful notification copywriter. Write concise, friendly, safe, "
    "1-2 sentence messages. Avoid emojis. No markdown."
)

KIND_HINTS: dict[NotificationKind, str] = {
    NotificationKind.request_created: (
        "Context: The requester just submitted a join request. Confirm submission and next steps."
    ),
    NotificationKind.approved: (
        "Context: The host approved the requester. Confirm approval and what happens next."
    ),
    NotificationKind.rejected: (
        "Context: The host rejected the request. Be polite; optionally reference the host note if present."
    ),
    NotificationKind.location_unlocked: (
        "Context: The host revealed the exact location. Tell attendees where to find details in the app."
    ),
}


@dataclass
class NoticeContext:
    event_title: str
    event_date_time: Optional[str] = None
    requester_name: Optional[str] = None
    host_name: Optional[str] = None
    host_note: Optional[str] = None


@dataclass
class Notice:
    subject: str
    text: str
    ai_used: bool
    error: Optional[str] = None


def fallback_text(kind: NotificationKind, ctx: NoticeContext) -> str:
    """One-sentence template; always mentions the event title."""
    title = ctx.event_title or "the event"
    when = f" ({ctx.event_date_time})" if ctx.event_date_time else ""
    host = f" by {ctx.host_name}" if ctx.host_name else ""
    note = f" Note: {ctx.host_note}" if ctx.host_note else ""

    if kind == NotificationKind.request_created:
        return f"Your request to join “{title}”{when} has been sent and is pending host review.{note}"
    if kind == NotificationKind.approved:
        return f"You're approved to join “{title}”{when}{host}. See you there!{note}"
    if kind == NotificationKind.rejected:
        return f"Your request to join “{title}”{when}{host} was not approved.{note}"
    if kind == NotificationKind.location_unlocked:
        return (
            f"The exact location for “{title}”{when} is now available. "
            f"Please check the event details in the app.{note}"
        )
    raise ValueError(f"Unknown notification kind: {kind}")


def build_prompt(kind: NotificationKind, ctx: NoticeContext) -> str:
    lines = [f"Event title: {ctx.event_title or 'N/A'}"]
    if ctx.event_date_time:
        lines.append(f"Event time: {ctx.event_date_time}")
    if ctx.host_name:
        lines.append(f"Host: {ctx.host_name}")
    if ctx.requester_name:
        lines.append(f"Requester: {ctx.requester_name}")
    if ctx.host_note:
        lines.append(f"Host note: {ctx.host_note}")
    lines.append("")
    lines.append("Write a short (1-2 sentences) notification text, friendly and clear.")
    lines.append("Do not include markdown or emojis.")
    lines.append(KIND_HINTS[kind])
    return "\n".join(lines)


def clean_generated_text(text: str) -> str:
    text = text.strip().strip("\"'“”")
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    return text if len(text) <= limit else text[:limit] + ELLIPSIS


class NoticeCopywriter:
    """Renders a Notice for a lifecycle signal; ``client`` is an OpenAI-compatible client or None."""

    def __init__(self, client: Optional[Any] = None, model: str = "gpt-4o-mini"):
        self._client = client
        self._model = model

    @property
    def ai_enabled(self) -> bool:
        return self._client is not None

    def generate(self, kind: NotificationKind, ctx: NoticeContext) -> Notice:
        subject = SUBJECTS[kind]
        fallback = fallback_text(kind, ctx)

        if self._client is None:
            return Notice(subject=subject, text=fallback, ai_used=False)

        try:
            response = self._client.chat.completions.create(
                model=self._model,
                temperature=0.7,
                max_tokens=160,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(kind, ctx)},
                ],
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.warning("Notice generation for %s fell back to template: %s", kind.value, e)
            return Notice(subject=subject, text=fallback, ai_used=False, error=f"{type(e).__name__}: {e}")

        text = clean_generated_text(content) if isinstance(content, str) else ""
        if not text:
            logger.warning("Notice generation for %s returned no content", kind.value)
            return Notice(subject=subject, text=fallback, ai_used=False, error="empty_completion")

        return Notice(subject=subject, text=truncate(text), ai_used=True)


def get_copywriter() -> NoticeCopywriter:
    """Dependency factory; without an API key the copywriter is template-only."""
    if not settings.OPENAI_API_KEY or settings.OPENAI_API_KEY == "your-api-key-here":
        return NoticeCopywriter(client=None, model=settings.OPENAI_MODEL)
    client = OpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.OPENAI_TIMEOUT_SECONDS,
        max_retries=0,
    )
    return NoticeCopywriter(client=client, model=settings.OPENAI_MODEL)
