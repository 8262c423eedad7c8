"""Webflow webhook signature checks and item processing."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time

from sqlalchemy.orm import Session

from app.services.webflow.client import WebflowClient
from app.services.webflow.work_order_sync import WebflowWorkOrderSync

logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_MS = 5 * 60 * 1000


def compute_webflow_signature(body: bytes | str, timestamp: str, secret: str) -> str:
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    signed_payload = f"{timestamp}:{body}"
    return hmac.new(secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_webflow_signature(
    body: bytes | str,
    signature: str | None,
    timestamp: str | None,
    secret: str | None,
    now_ms: int | None = None,
) -> bool:
    """Check X-Webflow-Signature / X-Webflow-Timestamp for a request body.

    Without a configured secret every request is accepted. Timestamps are
    milliseconds since the epoch and must be within five minutes of now.
    """
    if not secret:
        return True
    if not signature or not timestamp:
        return False
    try:
        request_ms = int(timestamp)
    except (TypeError, ValueError):
        logger.warning("webflow_webhook_bad_timestamp value=%s", timestamp)
        return False
    current_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(current_ms - request_ms) > TIMESTAMP_TOLERANCE_MS:
        logger.warning("webflow_webhook_stale_timestamp skew_ms=%d", current_ms - request_ms)
        return False
    expected = compute_webflow_signature(body, timestamp, secret)
    if not hmac.compare_digest(expected, signature):
        logger.warning("webflow_webhook_signature_mismatch")
        return False
    return True


def extract_items(payload: dict) -> list[dict]:
    """Webflow sends ``{"triggerType", "payload": item}``; bulk replays use ``items``."""
    if isinstance(payload.get("items"), list):
        return [item for item in payload["items"] if isinstance(item, dict)]
    inner = payload.get("payload")
    if isinstance(inner, dict):
        return [inner]
    return [payload]


def process_webflow_item(db: Session, item: dict, client: WebflowClient | None = None) -> dict:
    item_id = item.get("id")
    if not item_id:
        return {"success": False, "error": "No item ID in item"}

    logger.info(
        "webflow_webhook_item item_id=%s field_keys=%s",
        item_id,
        ",".join(sorted((item.get("fieldData") or {}).keys())),
    )
    sync = WebflowWorkOrderSync(db, client=client)
    try:
        result = sync.sync_single(item)
    finally:
        if client is None:
            sync.close()

    if result.success:
        logger.info("webflow_webhook_synced item_id=%s work_order_id=%s", item_id, result.work_order_id)
        return {"success": True, "work_order_id": result.work_order_id, "item_id": item_id}
    logger.error("webflow_webhook_sync_failed item_id=%s reason=%s error=%s", item_id, result.reason, result.error)
    return {"success": False, "error": result.error, "reason": result.reason, "item_id": item_id}
