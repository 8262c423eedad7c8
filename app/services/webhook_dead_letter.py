"""Persist webhook payloads that could not be applied."""

import logging
import traceback

from app.db import SessionLocal
from app.models.webhook_dead_letter import WebhookDeadLetter

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 4000
_MAX_TEXT_PAYLOAD = 8000


def _format_error(error: str | Exception) -> str:
    if not isinstance(error, Exception):
        return str(error)
    # Format the exception object itself: inside a Celery retry handler
    # sys.exc_info() may already point at the Retry exception.
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def _normalize_payload(raw_payload: dict | list | str | bytes) -> dict:
    if isinstance(raw_payload, bytes):
        raw_payload = raw_payload.decode("utf-8", errors="replace")
    if isinstance(raw_payload, str):
        return {"raw_text": raw_payload[:_MAX_TEXT_PAYLOAD]}
    if isinstance(raw_payload, list):
        return {"items": raw_payload}
    return raw_payload


def write_dead_letter(
    channel: str,
    raw_payload: dict | list | str | bytes,
    error: str | Exception,
    trace_id: str | None = None,
    message_id: str | None = None,
    event_name: str | None = None,
    attempts: int = 1,
) -> None:
    """Store a failed webhook payload in its own session.

    Never raises: a failure to write is logged, so the calling task can
    finish normally.

    Args:
        channel: "webflow" or "freshbooks".
        raw_payload: Webflow item or FreshBooks event params as received.
        error: Error message or the exception that ended processing.
        trace_id: Correlation id assigned when the webhook was received.
        message_id: Webflow item id or FreshBooks object id.
        event_name: FreshBooks event name (``payment.create``...) when known.
        attempts: How many times processing was tried.
    """
    error_text = _format_error(error)[:_MAX_ERROR_LENGTH] or None
    session = SessionLocal()
    try:
        session.add(
            WebhookDeadLetter(
                channel=channel,
                event_name=event_name,
                trace_id=trace_id,
                message_id=message_id,
                attempts=attempts,
                raw_payload=_normalize_payload(raw_payload),
                error=error_text,
            )
        )
        session.commit()
        logger.info(
            "webhook_dead_letter_written channel=%s event=%s message_id=%s attempts=%d trace_id=%s",
            channel,
            event_name,
            message_id,
            attempts,
            trace_id,
        )
    except Exception:
        session.rollback()
        logger.exception("webhook_dead_letter_write_failed channel=%s message_id=%s", channel, message_id)
    finally:
        session.close()
