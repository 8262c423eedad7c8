"""Import FreshBooks invoices into local mirror records."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.metrics import record_sync_item
from app.models.freshbooks import FreshbooksInvoice
from app.models.invoice import Invoice
from app.services.common import parse_date
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.lifecycle import InvoiceLifecycleService, amount_from
from app.services.freshbooks.status import status_from_freshbooks

logger = logging.getLogger(__name__)


def invoice_view_url(business_id: str | None, invoice_id) -> str | None:
    if not business_id or not invoice_id:
        return None
    return f"https://my.freshbooks.com/#/invoice/{business_id}-{invoice_id}"


def upsert_freshbooks_invoice(
    db: Session,
    data: dict,
    invoice: Invoice | None = None,
    client_id: str | None = None,
    invoice_url: str | None = None,
    business_id: str | None = None,
) -> tuple[FreshbooksInvoice, bool]:
    """Create or update the mirror for one FreshBooks invoice payload.

    Returns the mirror and whether it was newly created. Does not commit.
    """
    freshbooks_id = str(data.get("id") or data.get("invoiceid"))
    fb_invoice = db.query(FreshbooksInvoice).filter(FreshbooksInvoice.freshbooks_id == freshbooks_id).first()
    created = fb_invoice is None
    if created:
        fb_invoice = FreshbooksInvoice(freshbooks_id=freshbooks_id)
        db.add(fb_invoice)

    amount = data.get("amount")
    remote_client_id = client_id or data.get("clientid") or data.get("customerid")
    fb_invoice.freshbooks_client_id = str(remote_client_id) if remote_client_id else fb_invoice.freshbooks_client_id
    fb_invoice.invoice_number = data.get("invoice_number")
    fb_invoice.status = status_from_freshbooks(data)
    fb_invoice.notes = data.get("notes")
    fb_invoice.amount = amount_from(amount)
    fb_invoice.amount_outstanding = amount_from(data.get("outstanding") or data.get("amount_outstanding"))
    fb_invoice.currency_code = (amount.get("code") if isinstance(amount, dict) else None) or data.get("currency_code")
    fb_invoice.date = parse_date(data.get("create_date") or data.get("date"))
    fb_invoice.due_date = parse_date(data.get("due_date"))
    fb_invoice.pdf_url = invoice_url or invoice_view_url(business_id, freshbooks_id) or fb_invoice.pdf_url
    fb_invoice.raw_data = data
    if invoice is not None:
        fb_invoice.invoice = invoice
    db.flush()
    return fb_invoice, created


@dataclass
class InvoiceSyncResult:
    created: int = 0
    updated: int = 0
    errors: list[dict] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def total_synced(self) -> int:
        return self.created + self.updated

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


class FreshbooksInvoiceSync:
    """Pull invoices from FreshBooks and reconcile each mirror."""

    PER_PAGE = 100

    def __init__(self, db: Session, client: FreshbooksClient | None = None):
        self.db = db
        self._client = client

    def _get_client(self) -> FreshbooksClient:
        if self._client is None:
            self._client = FreshbooksClient(self.db)
        return self._client

    def close(self):
        if self._client:
            self._client.close()
            self._client = None

    def _apply(self, data: dict, result: InvoiceSyncResult) -> None:
        client = self._get_client()
        savepoint = self.db.begin_nested()
        try:
            fb_invoice, created = upsert_freshbooks_invoice(self.db, data, business_id=client.business_id)
            lifecycle = InvoiceLifecycleService(self.db, fb_invoice, client=client)
            lifecycle.reconcile_payments()
            lifecycle.propagate_status_to_invoice()
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            invoice_id = data.get("id") or data.get("invoiceid")
            logger.warning("freshbooks_invoice_sync_failed invoice_id=%s error=%s", invoice_id, exc)
            result.errors.append({"invoice_id": invoice_id, "error": str(exc)})
            record_sync_item("freshbooks", "error")
            return
        if created:
            result.created += 1
        else:
            result.updated += 1
        record_sync_item("freshbooks", "created" if created else "updated")

    def sync_invoice(self, freshbooks_id: str) -> InvoiceSyncResult:
        start = time.monotonic()
        result = InvoiceSyncResult()
        data = self._get_client().get_invoice(freshbooks_id)
        if data:
            self._apply(data, result)
            self.db.commit()
        result.duration_seconds = time.monotonic() - start
        return result

    def sync_all(self) -> InvoiceSyncResult:
        """Walk every page of invoices.

        Raises:
            FreshbooksError: when a page cannot be fetched.
        """
        start = time.monotonic()
        result = InvoiceSyncResult()
        page = 1
        while True:
            listing = self._get_client().list_invoices(page=page, per_page=self.PER_PAGE)
            for data in listing["invoices"]:
                self._apply(data, result)
            self.db.commit()
            if page >= listing["pages"]:
                break
            page += 1
        result.duration_seconds = time.monotonic() - start
        if result.has_errors:
            logger.warning("freshbooks_invoice_sync_partial errors=%d", len(result.errors))
        return result


def freshbooks_invoice_sync(db: Session) -> FreshbooksInvoiceSync:
    return FreshbooksInvoiceSync(db)
