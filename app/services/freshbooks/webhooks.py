"""FreshBooks callback verification, signatures and event handling."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging

from sqlalchemy.orm import Session

from app.errors import FreshbooksError
from app.models.freshbooks import FreshbooksInvoice
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.lifecycle import InvoiceLifecycleService

logger = logging.getLogger(__name__)

PAYMENT_EVENTS = frozenset({"payment.create", "payment.updated"})
INVOICE_EVENTS = frozenset({"invoice.create", "invoice.updated"})


def is_verification_request(params: dict) -> bool:
    return bool(params.get("verifier") or params.get("verification_code"))


def handle_verification(params: dict, client: FreshbooksClient) -> str:
    """Answer the verifier FreshBooks posts right after a callback is created."""
    callback_id = params.get("callback_id") or params.get("id")
    verifier = params.get("verifier") or params.get("verification_code")
    if not callback_id or not verifier:
        logger.info("freshbooks_verification_received callback_id=%s", callback_id)
        return "received"
    try:
        callback = client.verify_callback(str(callback_id), str(verifier))
    except FreshbooksError as exc:
        logger.error("freshbooks_verification_failed callback_id=%s error=%s", callback_id, exc)
        return "verification_failed"
    if callback and callback.get("verified"):
        logger.info("freshbooks_callback_verified callback_id=%s", callback_id)
        return "verified"
    logger.warning("freshbooks_callback_unverified callback_id=%s", callback_id)
    return "pending"


def compute_freshbooks_signature(body: bytes | str, secret: str) -> str:
    if isinstance(body, str):
        body = body.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_freshbooks_signature(body: bytes | str, signature: str | None, secret: str | None) -> bool:
    if not secret:
        return True
    if not signature:
        return False
    expected = compute_freshbooks_signature(body, secret)
    if not hmac.compare_digest(expected, signature):
        logger.warning("freshbooks_webhook_signature_mismatch")
        return False
    return True


def _enqueue_invoice_resync(freshbooks_id: str) -> None:
    from app.tasks.freshbooks import sync_freshbooks_invoices

    try:
        sync_freshbooks_invoices.delay(freshbooks_id)
    except Exception as exc:
        logger.warning("freshbooks_resync_enqueue_failed freshbooks_id=%s error=%s", freshbooks_id, exc)


def _find_mirror(db: Session, freshbooks_id) -> FreshbooksInvoice | None:
    if not freshbooks_id:
        return None
    return db.query(FreshbooksInvoice).filter(FreshbooksInvoice.freshbooks_id == str(freshbooks_id)).first()


def _process_payment(db: Session, payment_id: str, client: FreshbooksClient) -> str:
    payment = client.get_payment(payment_id)
    if not payment:
        logger.warning("freshbooks_payment_not_found payment_id=%s", payment_id)
        return "not_found"
    fb_invoice = _find_mirror(db, payment.get("invoiceid"))
    if fb_invoice is None:
        logger.warning(
            "freshbooks_payment_invoice_unknown payment_id=%s invoice_id=%s",
            payment_id,
            payment.get("invoiceid"),
        )
        return "not_found"
    lifecycle = InvoiceLifecycleService(db, fb_invoice, client=client)
    if lifecycle.handle_payment_received(payment) is None:
        logger.error("freshbooks_payment_failed payment_id=%s errors=%s", payment_id, lifecycle.errors)
        return "failed"
    _enqueue_invoice_resync(fb_invoice.freshbooks_id)
    return "payment_processed"


def _process_invoice(db: Session, invoice_id: str, client: FreshbooksClient) -> str:
    fb_invoice = _find_mirror(db, invoice_id)
    if fb_invoice is None:
        logger.info("freshbooks_invoice_event_unknown invoice_id=%s", invoice_id)
        return "not_found"
    lifecycle = InvoiceLifecycleService(db, fb_invoice, client=client)
    if not lifecycle.sync_from_freshbooks():
        logger.error("freshbooks_invoice_event_sync_failed invoice_id=%s errors=%s", invoice_id, lifecycle.errors)
        return "failed"
    return "invoice_synced"


def process_event(db: Session, event_name: str | None, object_id, client: FreshbooksClient | None = None) -> str:
    """Apply one FreshBooks event; returns a short outcome label."""
    if event_name not in PAYMENT_EVENTS and event_name not in INVOICE_EVENTS:
        logger.info("freshbooks_event_ignored event=%s object_id=%s", event_name, object_id)
        return "ignored"
    if not object_id:
        logger.warning("freshbooks_event_missing_object event=%s", event_name)
        return "not_found"

    owns_client = client is None
    try:
        if owns_client:
            client = FreshbooksClient(db)
        if event_name in PAYMENT_EVENTS:
            return _process_payment(db, str(object_id), client)
        return _process_invoice(db, str(object_id), client)
    except FreshbooksError as exc:
        logger.error("freshbooks_event_failed event=%s object_id=%s error=%s", event_name, object_id, exc)
        return "failed"
    finally:
        if owns_client and client is not None:
            client.close()
