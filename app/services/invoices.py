"""Admin actions on invoices billed through FreshBooks.

Each action checks the invoice's lifecycle state against ``ACTION_RULES``
first, then talks to FreshBooks and re-syncs the local mirror. Failures the
admin can act on surface as ``InvoiceActionError``.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import FreshbooksError, InvoiceActionError
from app.models.freshbooks import FreshbooksClient as FreshbooksClientRecord
from app.models.freshbooks import FreshbooksInvoice
from app.models.invoice import Invoice
from app.services import email as email_service
from app.services.common import coerce_uuid
from app.services.freshbooks.client import ONLINE_PAYMENT_GATEWAYS, FreshbooksClient
from app.services.freshbooks.client_sync import upsert_freshbooks_client
from app.services.freshbooks.invoice_sync import upsert_freshbooks_invoice
from app.services.freshbooks.lifecycle import InvoiceLifecycleService, amount_from
from app.services.freshbooks.status import (
    APPLY_DISCOUNT,
    MARK_PAID,
    SEND_INVOICE,
    VOID_INVOICE,
    VOID_INVOICE_WITH_EMAIL,
    action_allowed,
    invoice_state,
    status_from_freshbooks,
    to_numeric_safe,
)

logger = logging.getLogger(__name__)

DISCOUNT_RATE = Decimal("0.10")
DISCOUNT_LINE_NAME = "10% Discount"
_CENT = Decimal("0.01")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def get_invoice(db: Session, invoice_id: str) -> Invoice:
    invoice = db.get(Invoice, coerce_uuid(invoice_id))
    if not invoice or invoice.deleted_at is not None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


def _round(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _require_mirror(invoice: Invoice) -> FreshbooksInvoice:
    fb_invoice = invoice.primary_freshbooks_invoice
    if fb_invoice is None:
        raise InvoiceActionError("No FreshBooks invoice found")
    return fb_invoice


def _require_allowed(action: str, invoice: Invoice) -> None:
    if not action_allowed(action, invoice):
        raise InvoiceActionError(
            f"Action '{action}' is not allowed for invoices in state '{invoice_state(invoice)}'",
            details={"action": action, "state": invoice_state(invoice)},
        )


def _client_for(db: Session, client: FreshbooksClient | None) -> FreshbooksClient:
    return client or FreshbooksClient(db)


def _currency(remote: dict, fb_invoice: FreshbooksInvoice) -> str:
    amount = remote.get("amount")
    if isinstance(amount, dict) and amount.get("code"):
        return amount["code"]
    return remote.get("currency_code") or fb_invoice.currency_code or settings.freshbooks_default_currency


def _preserved_lines(remote: dict, currency: str) -> list[dict]:
    lines = []
    for line in remote.get("lines") or []:
        unit_cost = line.get("unit_cost")
        cost = unit_cost.get("amount") if isinstance(unit_cost, dict) else unit_cost
        lines.append(
            {
                "name": line.get("name"),
                "description": line.get("description"),
                "qty": line.get("qty") or 1,
                "unit_cost": {"amount": str(cost if cost is not None else 0), "code": currency},
                "type": line.get("type", 0),
            }
        )
    return lines


def _fetch_remote(client: FreshbooksClient, fb_invoice: FreshbooksInvoice) -> dict:
    remote = client.get_invoice(fb_invoice.freshbooks_id, include_lines=True)
    if not remote:
        raise InvoiceActionError("Could not retrieve invoice from FreshBooks")
    return remote


def _client_email(
    db: Session, invoice: Invoice, fb_invoice: FreshbooksInvoice, client: FreshbooksClient
) -> str | None:
    """Email of the billed client; fetched from FreshBooks when not mirrored yet."""
    client_id = invoice.freshbooks_client_id or fb_invoice.freshbooks_client_id
    if not client_id:
        return None
    record = db.query(FreshbooksClientRecord).filter(FreshbooksClientRecord.freshbooks_id == str(client_id)).first()
    if record is not None and record.email:
        return record.email
    try:
        data = client.get_client(str(client_id))
    except FreshbooksError as exc:
        logger.warning("invoice_client_lookup_failed client_id=%s error=%s", client_id, exc)
        return None
    if not data:
        return None
    record, _ = upsert_freshbooks_client(db, data)
    return record.email


def _enable_online_payment(client: FreshbooksClient, invoice_id: str) -> str | None:
    gateways = (settings.freshbooks_payment_gateway,) if settings.freshbooks_payment_gateway else ONLINE_PAYMENT_GATEWAYS
    for gateway in gateways:
        try:
            client.enable_online_payment(invoice_id, gateway)
            return gateway
        except FreshbooksError as exc:
            logger.info("freshbooks_gateway_unavailable invoice=%s gateway=%s error=%s", invoice_id, gateway, exc)
    logger.warning("freshbooks_online_payment_not_enabled invoice=%s", invoice_id)
    return None


def _resync(db: Session, fb_invoice: FreshbooksInvoice, client: FreshbooksClient) -> bool:
    lifecycle = InvoiceLifecycleService(db, fb_invoice, client=client)
    if lifecycle.sync_from_freshbooks():
        return True
    logger.warning("invoice_action_resync_failed freshbooks_id=%s errors=%s", fb_invoice.freshbooks_id, lifecycle.errors)
    return False


def _set_status(db: Session, invoice: Invoice, fb_invoice: FreshbooksInvoice | None, status: str) -> None:
    if fb_invoice is not None:
        fb_invoice.status = status
    invoice.status = status
    invoice.final_status = status
    db.commit()


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def send_invoice(db: Session, invoice: Invoice, email: str | None = None, client: FreshbooksClient | None = None) -> dict:
    _require_allowed(SEND_INVOICE, invoice)
    fb_invoice = _require_mirror(invoice)
    client = _client_for(db, client)
    recipient = email or _client_email(db, invoice, fb_invoice, client)
    if not recipient:
        raise InvoiceActionError("No email address found for client")

    remote = _fetch_remote(client, fb_invoice)
    _enable_online_payment(client, fb_invoice.freshbooks_id)

    currency = _currency(remote, fb_invoice)
    fields = {
        "customerid": remote.get("customerid") or remote.get("clientid"),
        "create_date": remote.get("create_date"),
        "due_date": remote.get("due_date"),
        "currency_code": currency,
        "notes": remote.get("notes"),
        "lines": _preserved_lines(remote, currency),
        "action_email": True,
        "email_recipients": [recipient],
        "email_include_pdf": True,
    }
    fields = {key: value for key, value in fields.items() if value is not None}
    try:
        updated = client.update_invoice(fb_invoice.freshbooks_id, fields)
    except FreshbooksError as exc:
        raise InvoiceActionError(f"Failed to send invoice: {exc.message}") from exc

    fb_invoice.status = status_from_freshbooks(updated or {}) or "sent"
    db.flush()
    if not _resync(db, fb_invoice, client):
        _set_status(db, invoice, fb_invoice, "sent")
    logger.info("invoice_sent invoice=%s freshbooks_id=%s to=%s", invoice.id, fb_invoice.freshbooks_id, recipient)
    return {"message": f"Invoice sent successfully via FreshBooks to {recipient}"}


def void_invoice(
    db: Session,
    invoice: Invoice,
    notify_client: bool = False,
    client: FreshbooksClient | None = None,
) -> dict:
    _require_allowed(VOID_INVOICE_WITH_EMAIL if notify_client else VOID_INVOICE, invoice)
    fb_invoice = _require_mirror(invoice)
    recipient = None
    if notify_client:
        recipient = (invoice.flat_address or "").strip()
        if not _EMAIL_RE.match(recipient):
            raise InvoiceActionError("A valid client email address is required to send the voidance email")

    client = _client_for(db, client)
    remote = _fetch_remote(client, fb_invoice)
    if to_numeric_safe(remote.get("status")) == 1:
        raise InvoiceActionError("Cannot void a draft invoice. Please send the invoice first before voiding.")
    try:
        client.void_invoice(fb_invoice.freshbooks_id)
    except FreshbooksError as exc:
        raise InvoiceActionError(f"Failed to void FreshBooks invoice: {exc.message}") from exc

    _resync(db, fb_invoice, client)
    mirror_voided = fb_invoice.status == "voided"
    invoice.status = "voided"
    invoice.final_status = "voided"
    db.commit()
    logger.info("invoice_voided invoice=%s freshbooks_id=%s", invoice.id, fb_invoice.freshbooks_id)

    if notify_client:
        sent = email_service.send_voided_invoice_email(invoice, recipient)
        logger.info("invoice_void_notification invoice=%s to=%s sent=%s", invoice.id, recipient, sent)
        if not sent:
            return {"message": "Invoice voided but the voidance email could not be sent"}
        return {"message": "Invoice voided and voidance email sent successfully"}
    if not mirror_voided:
        return {"message": "Invoice voided successfully (status may update on next sync)"}
    return {"message": "Invoice voided successfully"}


def mark_paid(db: Session, invoice: Invoice, client: FreshbooksClient | None = None) -> dict:
    _require_allowed(MARK_PAID, invoice)
    fb_invoice = _require_mirror(invoice)
    fb_invoice.amount_outstanding = 0
    _set_status(db, invoice, fb_invoice, "paid")

    client = _client_for(db, client)
    try:
        remote = _fetch_remote(client, fb_invoice)
        currency = _currency(remote, fb_invoice)
        client.update_invoice(
            fb_invoice.freshbooks_id,
            {"status": "paid", "lines": _preserved_lines(remote, currency)},
        )
    except (FreshbooksError, InvoiceActionError) as exc:
        logger.warning("invoice_mark_paid_remote_failed freshbooks_id=%s error=%s", fb_invoice.freshbooks_id, exc)
    logger.info("invoice_marked_paid invoice=%s", invoice.id)
    return {"message": "Invoice marked as paid"}


def _discountable_lines(invoice: Invoice, remote: dict, currency: str) -> list[dict]:
    lines = [
        line
        for line in _preserved_lines(remote, currency)
        if "discount" not in (line.get("name") or "").lower()
    ]
    if lines:
        return lines
    amount = amount_from(remote.get("amount")) or Decimal("0")
    if amount <= 0:
        raise InvoiceActionError("Invoice has no line items and amount is zero")
    return [
        {
            "name": invoice.name or "Window repairs",
            "description": invoice.job or invoice.wrs_link or remote.get("notes") or "",
            "qty": 1,
            "unit_cost": {"amount": str(amount), "code": currency},
            "type": 0,
        }
    ]


def apply_discount(db: Session, invoice: Invoice, client: FreshbooksClient | None = None) -> dict:
    _require_allowed(APPLY_DISCOUNT, invoice)
    fb_invoice = _require_mirror(invoice)
    client = _client_for(db, client)
    remote = _fetch_remote(client, fb_invoice)
    currency = _currency(remote, fb_invoice)

    lines = _discountable_lines(invoice, remote, currency)
    total = sum(
        (Decimal(str(line["unit_cost"]["amount"])) * Decimal(str(line.get("qty") or 1)) for line in lines),
        Decimal("0"),
    )
    if total <= 0:
        raise InvoiceActionError("Invoice total is zero. Cannot apply discount.")
    discount = _round(total * DISCOUNT_RATE)
    lines.append(
        {
            "name": DISCOUNT_LINE_NAME,
            "description": "Applied 10% discount",
            "qty": 1,
            "unit_cost": {"amount": str(-discount), "code": currency},
            "type": 0,
            "tax_amount1": "0",
            "tax_amount2": "0",
        }
    )
    try:
        client.update_invoice(fb_invoice.freshbooks_id, {"lines": lines})
    except FreshbooksError as exc:
        raise InvoiceActionError(f"Failed to apply discount: {exc.message}") from exc

    _resync(db, fb_invoice, client)
    refreshed = client.get_invoice(fb_invoice.freshbooks_id) or {}
    included = amount_from(refreshed.get("amount"))
    if included is None:
        included = total - discount
    invoice.included_vat_amount = _round(included)
    invoice.excluded_vat_amount = _round(included / (Decimal("1") + Decimal(str(settings.vat_rate))))
    db.commit()
    logger.info(
        "invoice_discount_applied invoice=%s discount=%s included=%s",
        invoice.id,
        discount,
        invoice.included_vat_amount,
    )
    return {"message": "10% discount applied successfully"}


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

INVOICE_DUE_DAYS = 30


def _invoice_date(invoice: Invoice) -> date:
    return invoice.created_at.date() if invoice.created_at else date.today()


def _creation_notes(invoice: Invoice) -> str | None:
    notes = []
    if invoice.job:
        notes.append(f"Job: {invoice.job}")
    if invoice.wrs_link:
        notes.append(f"WRS Link: {invoice.wrs_link}")
    return "\n".join(notes) or None


def _default_lines(invoice: Invoice) -> list[dict]:
    cost = invoice.included_vat_amount or invoice.excluded_vat_amount or Decimal("0")
    return [
        {
            "name": invoice.name or "Invoice",
            "description": invoice.job or invoice.wrs_link or "",
            "quantity": 1,
            "cost": cost,
            "type": 0,
        }
    ]


def create_freshbooks_invoice(
    db: Session,
    invoice: Invoice,
    client_id: str | None = None,
    lines: list[dict] | None = None,
    client: FreshbooksClient | None = None,
) -> dict:
    """Create the FreshBooks invoice for a local invoice and mirror it.

    Without explicit ``lines`` a single line carries the invoice's VAT
    inclusive amount. Payment is due 30 days after the invoice date.
    """
    client_id = client_id or invoice.freshbooks_client_id
    if not client_id:
        raise InvoiceActionError("Client ID is required")
    if invoice.primary_freshbooks_invoice is not None:
        raise InvoiceActionError(
            "Invoice already has a FreshBooks invoice",
            details={"freshbooks_id": invoice.primary_freshbooks_invoice.freshbooks_id},
        )

    client = _client_for(db, client)
    invoice_date = _invoice_date(invoice)
    data = client.create_invoice(
        {
            "client_id": client_id,
            "date": invoice_date.isoformat(),
            "due_date": (invoice_date + timedelta(days=INVOICE_DUE_DAYS)).isoformat(),
            "notes": _creation_notes(invoice),
            "lines": lines or _default_lines(invoice),
        }
    )
    if not data:
        raise InvoiceActionError("FreshBooks did not return the created invoice")

    freshbooks_id = str(data.get("id") or data.get("invoiceid"))
    try:
        payment_link = client.invoice_payment_link(freshbooks_id)
    except FreshbooksError as exc:
        logger.warning("invoice_payment_link_failed freshbooks_id=%s error=%s", freshbooks_id, exc)
        payment_link = None

    fb_invoice, _ = upsert_freshbooks_invoice(
        db, data, invoice=invoice, client_id=str(client_id), business_id=client.business_id
    )
    invoice.freshbooks_client_id = str(client_id)
    invoice.invoice_pdf_link = fb_invoice.pdf_url
    db.commit()
    logger.info("invoice_created_in_freshbooks invoice=%s freshbooks_id=%s", invoice.id, freshbooks_id)
    return {
        "freshbooks_id": freshbooks_id,
        "invoice_number": fb_invoice.invoice_number,
        "status": fb_invoice.status,
        "payment_link": payment_link,
        "pdf_url": fb_invoice.pdf_url,
    }


_ACTIONS = {
    SEND_INVOICE: lambda db, invoice, client, email: send_invoice(db, invoice, email=email, client=client),
    VOID_INVOICE: lambda db, invoice, client, email: void_invoice(db, invoice, client=client),
    VOID_INVOICE_WITH_EMAIL: lambda db, invoice, client, email: void_invoice(
        db, invoice, notify_client=True, client=client
    ),
    MARK_PAID: lambda db, invoice, client, email: mark_paid(db, invoice, client=client),
    APPLY_DISCOUNT: lambda db, invoice, client, email: apply_discount(db, invoice, client=client),
}


def run_action(
    db: Session,
    invoice: Invoice,
    action: str,
    email: str | None = None,
    client: FreshbooksClient | None = None,
) -> dict:
    handler = _ACTIONS.get(action)
    if handler is None:
        raise InvoiceActionError(f"Unknown action: {action}", details={"action": action})
    _require_allowed(action, invoice)
    return handler(db, invoice, client, email)
