"""FreshBooks accounting integration: API client, invoice lifecycle and webhooks."""

from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.client_sync import FreshbooksClientSync, RecordSyncResult, freshbooks_client_sync
from app.services.freshbooks.invoice_sync import FreshbooksInvoiceSync, InvoiceSyncResult, freshbooks_invoice_sync
from app.services.freshbooks.lifecycle import InvoiceLifecycleService
from app.services.freshbooks.payment_sync import FreshbooksPaymentSync, freshbooks_payment_sync
from app.services.freshbooks.webhooks import (
    handle_verification,
    is_verification_request,
    process_event,
    verify_freshbooks_signature,
)

__all__ = [
    "FreshbooksClient",
    "FreshbooksClientSync",
    "FreshbooksInvoiceSync",
    "FreshbooksPaymentSync",
    "InvoiceLifecycleService",
    "InvoiceSyncResult",
    "RecordSyncResult",
    "freshbooks_client_sync",
    "freshbooks_invoice_sync",
    "freshbooks_payment_sync",
    "handle_verification",
    "is_verification_request",
    "process_event",
    "verify_freshbooks_signature",
]
