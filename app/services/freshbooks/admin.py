"""Admin operations on the FreshBooks connection: token status and event callbacks."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.errors import FreshbooksCallbackError
from app.models.freshbooks import FreshbooksToken
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.webhooks import INVOICE_EVENTS, PAYMENT_EVENTS

logger = logging.getLogger(__name__)

CALLBACK_EVENTS = tuple(sorted(INVOICE_EVENTS | PAYMENT_EVENTS))


def connection_status(db: Session) -> dict:
    token = FreshbooksToken.current(db)
    if token is None:
        return {"connected": False, "expired": False, "message": "FreshBooks not connected"}
    if token.expired():
        return {"connected": True, "expired": True, "message": "Token expired, refresh needed"}
    return {
        "connected": True,
        "expired": False,
        "business_id": token.business_id,
        "expires_at": token.token_expires_at,
    }


def _callback_view(callback: dict) -> dict:
    return {
        "callback_id": str(callback.get("callbackid") or callback.get("id")),
        "event": callback.get("event"),
        "uri": callback.get("uri"),
        "verified": bool(callback.get("verified")),
    }


def list_callbacks(client: FreshbooksClient) -> list[dict]:
    return [_callback_view(callback) for callback in client.list_callbacks()]


def register_callbacks(
    client: FreshbooksClient,
    uri: str | None = None,
    events: tuple[str, ...] | list[str] = CALLBACK_EVENTS,
) -> dict:
    """Create a callback for each event not already pointed at ``uri``.

    FreshBooks posts a verifier to the new callbacks right away; the
    webhook endpoint answers it.
    """
    uri = uri or settings.freshbooks_webhook_url
    if not uri:
        raise FreshbooksCallbackError("FreshBooks webhook URL not configured")
    unknown = sorted(set(events) - set(CALLBACK_EVENTS))
    if unknown:
        raise FreshbooksCallbackError("Unsupported callback events", details={"events": unknown})

    existing = {(callback.get("event"), callback.get("uri")) for callback in client.list_callbacks()}
    created, skipped = [], []
    for event in events:
        if (event, uri) in existing:
            skipped.append(event)
            continue
        callback = client.create_callback(event, uri)
        created.append(_callback_view(callback or {"event": event, "uri": uri}))
        logger.info("freshbooks_callback_registered event=%s uri=%s", event, uri)
    return {"created": created, "skipped": skipped}


def resend_verification(client: FreshbooksClient, callback_id: str) -> dict:
    callback = client.resend_verification(callback_id)
    logger.info("freshbooks_callback_verification_resent callback_id=%s", callback_id)
    return _callback_view(callback or {"callbackid": callback_id})


def delete_callback(client: FreshbooksClient, callback_id: str) -> None:
    client.delete_callback(callback_id)
    logger.info("freshbooks_callback_deleted callback_id=%s", callback_id)
