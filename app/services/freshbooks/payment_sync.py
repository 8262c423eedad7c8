"""Import FreshBooks payments and reconcile the invoices they settle."""

from __future__ import annotations

import logging
import time

from sqlalchemy.orm import Session

from app.metrics import record_sync_item
from app.models.freshbooks import FreshbooksInvoice
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.client_sync import RecordSyncResult
from app.services.freshbooks.lifecycle import InvoiceLifecycleService, upsert_freshbooks_payment

logger = logging.getLogger(__name__)


class FreshbooksPaymentSync:
    """
    Pull payments from FreshBooks into the payment mirror.

    A payment whose invoice is already mirrored locally also reconciles that
    invoice, so outstanding amounts and statuses reflect payments recorded
    before webhooks were registered.
    """

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

    def _reconcile_invoice(self, freshbooks_invoice_id: str | None) -> None:
        if not freshbooks_invoice_id:
            return
        fb_invoice = (
            self.db.query(FreshbooksInvoice).filter(FreshbooksInvoice.freshbooks_id == freshbooks_invoice_id).first()
        )
        if fb_invoice is None:
            logger.debug("freshbooks_payment_invoice_not_mirrored invoice_id=%s", freshbooks_invoice_id)
            return
        lifecycle = InvoiceLifecycleService(self.db, fb_invoice, client=self._client)
        lifecycle.reconcile_payments()
        lifecycle.propagate_status_to_invoice()

    def _apply(self, data: dict, result: RecordSyncResult) -> None:
        savepoint = self.db.begin_nested()
        try:
            payment, created = upsert_freshbooks_payment(self.db, data)
            self._reconcile_invoice(payment.freshbooks_invoice_id)
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            payment_id = data.get("id") or data.get("paymentid")
            logger.warning("freshbooks_payment_sync_failed payment_id=%s error=%s", payment_id, exc)
            result.errors.append({"payment_id": payment_id, "error": str(exc)})
            record_sync_item("freshbooks", "error")
            return
        if created:
            result.created += 1
        else:
            result.updated += 1
        record_sync_item("freshbooks", "created" if created else "updated")

    def sync_payment(self, payment_id: str) -> RecordSyncResult:
        start = time.monotonic()
        result = RecordSyncResult()
        data = self._get_client().get_payment(payment_id)
        if data:
            self._apply(data, result)
            self.db.commit()
        result.duration_seconds = time.monotonic() - start
        return result

    def sync_all(self) -> RecordSyncResult:
        start = time.monotonic()
        result = RecordSyncResult()
        page = 1
        while True:
            listing = self._get_client().list_payments(page=page, per_page=self.PER_PAGE)
            for data in listing["payments"]:
                self._apply(data, result)
            self.db.commit()
            if page >= listing["pages"]:
                break
            page += 1
        result.duration_seconds = time.monotonic() - start
        if result.has_errors:
            logger.warning("freshbooks_payment_sync_partial errors=%d", len(result.errors))
        return result


def freshbooks_payment_sync(db: Session) -> FreshbooksPaymentSync:
    return FreshbooksPaymentSync(db)
