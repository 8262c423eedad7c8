"""Keep FreshBooks invoice mirrors, payments and local invoices consistent."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.freshbooks import FreshbooksInvoice, FreshbooksPayment
from app.services.common import parse_date, to_decimal
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.status import normalize_status, status_from_freshbooks
from app.telemetry import get_tracer

logger = logging.getLogger(__name__)


def amount_from(value) -> Decimal | None:
    """FreshBooks money is either ``{"amount": "10.00", "code": "GBP"}`` or a scalar."""
    if value is None:
        return None
    if isinstance(value, dict):
        return to_decimal(value.get("amount"))
    return to_decimal(value)


def upsert_freshbooks_payment(
    db: Session, data: dict, invoice_id: str | None = None
) -> tuple[FreshbooksPayment, bool]:
    """Create or update the mirror for one FreshBooks payment payload.

    The payment's own invoice reference wins over ``invoice_id``. Returns the
    mirror and whether it was newly created. Does not commit.
    """
    payment_id = str(data.get("id") or data.get("paymentid"))
    invoice_ref = data.get("invoice") if isinstance(data.get("invoice"), dict) else {}
    remote_invoice_id = data.get("invoiceid") or invoice_ref.get("id") or invoice_id
    amount = data.get("amount")

    payment = db.query(FreshbooksPayment).filter(FreshbooksPayment.freshbooks_id == payment_id).first()
    created = payment is None
    if created:
        payment = FreshbooksPayment(freshbooks_id=payment_id)
        db.add(payment)
    payment.freshbooks_invoice_id = str(remote_invoice_id) if remote_invoice_id else None
    payment.amount = amount_from(amount)
    payment.date = parse_date(data.get("date"))
    payment.payment_method = data.get("type")
    payment.currency_code = (amount.get("code") if isinstance(amount, dict) else None) or "USD"
    payment.notes = data.get("notes")
    payment.raw_data = data
    db.flush()
    return payment, created


def invoice_status_for(freshbooks_status: str | None) -> str:
    if not freshbooks_status:
        return "draft"
    normalized = str(freshbooks_status).strip().lower()
    if normalized == "void":
        return "voided"
    return normalized or "draft"


class InvoiceLifecycleService:
    """Sync one FreshBooks invoice mirror and reconcile it against payments."""

    def __init__(self, db: Session, freshbooks_invoice: FreshbooksInvoice | None, client: FreshbooksClient | None = None):
        self.db = db
        self.freshbooks_invoice = freshbooks_invoice
        self.errors: list[str] = []
        self._client = client

    def _get_client(self) -> FreshbooksClient:
        if self._client is None:
            self._client = FreshbooksClient(self.db)
        return self._client

    @property
    def success(self) -> bool:
        return not self.errors

    def _add_error(self, message: str) -> bool:
        self.errors.append(message)
        return False

    # ---------------------------------------------------------------------
    # Remote -> local
    # ---------------------------------------------------------------------

    def sync_from_freshbooks(self) -> bool:
        if self.freshbooks_invoice is None:
            return self._add_error("FreshBooks invoice not found")
        tracer = get_tracer(__name__)
        with tracer.start_as_current_span(
            "freshbooks.invoice.sync",
            attributes={"freshbooks.invoice_id": self.freshbooks_invoice.freshbooks_id},
        ):
            return self._sync()

    def _sync(self) -> bool:
        try:
            data = self._get_client().get_invoice(self.freshbooks_invoice.freshbooks_id)
            if not data:
                return self._add_error("Failed to fetch invoice from FreshBooks")
            savepoint = self.db.begin_nested()
            try:
                self._apply_invoice_data(data)
                self.reconcile_payments()
                self.propagate_status_to_invoice()
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                raise
            self.db.commit()
            return True
        except Exception as exc:
            self.db.rollback()
            logger.exception(
                "freshbooks_lifecycle_sync_failed freshbooks_id=%s",
                self.freshbooks_invoice.freshbooks_id,
            )
            return self._add_error(f"Sync failed: {exc}")

    def _apply_invoice_data(self, data: dict) -> None:
        fb_invoice = self.freshbooks_invoice
        amount = data.get("amount")
        client_id = data.get("clientid") or data.get("customerid")
        if client_id:
            fb_invoice.freshbooks_client_id = str(client_id)
        fb_invoice.invoice_number = data.get("invoice_number") or fb_invoice.invoice_number
        fb_invoice.status = status_from_freshbooks(data)
        fb_invoice.amount = amount_from(amount)
        fb_invoice.amount_outstanding = amount_from(data.get("outstanding") or data.get("amount_outstanding"))
        fb_invoice.date = parse_date(data.get("date") or data.get("create_date"))
        fb_invoice.due_date = parse_date(data.get("due_date"))
        fb_invoice.currency_code = (
            (amount.get("code") if isinstance(amount, dict) else None)
            or data.get("currency_code")
            or fb_invoice.currency_code
        )
        fb_invoice.notes = data.get("notes") or fb_invoice.notes
        fb_invoice.raw_data = data
        self.db.flush()

    # ---------------------------------------------------------------------
    # Reconciliation
    # ---------------------------------------------------------------------

    def _total_paid(self) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(FreshbooksPayment.amount), 0))
            .filter(FreshbooksPayment.freshbooks_invoice_id == self.freshbooks_invoice.freshbooks_id)
            .scalar()
        )
        return Decimal(str(total or 0))

    def reconcile_payments(self) -> None:
        fb_invoice = self.freshbooks_invoice
        if fb_invoice is None:
            return
        self.db.flush()
        amount = Decimal(str(fb_invoice.amount or 0))
        paid = self._total_paid()
        outstanding = amount - paid

        current = normalize_status(fb_invoice.status)
        if current == "voided":
            new_status = "voided"
        elif outstanding <= 0 and amount > 0:
            new_status = "paid"
        elif paid > 0 and outstanding > 0:
            new_status = "sent"
        else:
            new_status = fb_invoice.status or ("sent" if amount > 0 else "draft")

        current_outstanding = fb_invoice.amount_outstanding
        if fb_invoice.status == new_status and current_outstanding is not None and (
            Decimal(str(current_outstanding)) == outstanding
        ):
            return
        fb_invoice.status = new_status
        fb_invoice.amount_outstanding = outstanding
        self.db.flush()

    def propagate_status_to_invoice(self) -> None:
        invoice = self.freshbooks_invoice.invoice if self.freshbooks_invoice else None
        if invoice is None:
            return
        status = invoice_status_for(self.freshbooks_invoice.status)
        if invoice.status == status and invoice.final_status == status:
            return
        invoice.status = status
        invoice.final_status = status
        self.db.flush()

    # ---------------------------------------------------------------------
    # Payments
    # ---------------------------------------------------------------------

    def handle_payment_received(self, payment_data: dict | None) -> FreshbooksPayment | None:
        if not payment_data:
            self._add_error("Payment data required")
            return None
        try:
            savepoint = self.db.begin_nested()
            try:
                payment = self._upsert_payment(payment_data)
                self.reconcile_payments()
                self.propagate_status_to_invoice()
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                raise
            self.db.commit()
            return payment
        except Exception as exc:
            self.db.rollback()
            logger.exception("freshbooks_payment_handling_failed payment=%s", payment_data.get("id"))
            self._add_error(f"Payment handling failed: {exc}")
            return None

    def _upsert_payment(self, data: dict) -> FreshbooksPayment:
        payment, _ = upsert_freshbooks_payment(self.db, data, invoice_id=self.freshbooks_invoice.freshbooks_id)
        return payment

    # ---------------------------------------------------------------------
    # Verification
    # ---------------------------------------------------------------------

    def verify_sync(self) -> dict:
        if self.freshbooks_invoice is None:
            return {"synced": False, "errors": ["FreshBooks invoice not found"]}
        try:
            data = self._get_client().get_invoice(self.freshbooks_invoice.freshbooks_id)
        except Exception as exc:
            return {"synced": False, "errors": [f"Verification failed: {exc}"]}
        if not data:
            return {"synced": False, "errors": ["Failed to fetch from FreshBooks"]}

        fb_invoice = self.freshbooks_invoice
        discrepancies = []
        remote_status = status_from_freshbooks(data)
        if normalize_status(fb_invoice.status) != remote_status:
            discrepancies.append(f"Status mismatch: local={fb_invoice.status}, freshbooks={remote_status}")
        remote_amount = amount_from(data.get("amount"))
        if _money_differs(fb_invoice.amount, remote_amount):
            discrepancies.append(f"Amount mismatch: local={fb_invoice.amount}, freshbooks={remote_amount}")
        remote_outstanding = amount_from(data.get("outstanding") or data.get("amount_outstanding"))
        if _money_differs(fb_invoice.amount_outstanding, remote_outstanding):
            discrepancies.append(
                f"Outstanding mismatch: local={fb_invoice.amount_outstanding}, freshbooks={remote_outstanding}"
            )
        return {"synced": not discrepancies, "errors": discrepancies}


def _money_differs(local, remote) -> bool:
    if local is None or remote is None:
        return local is not remote
    return Decimal(str(local)) != Decimal(str(remote))
