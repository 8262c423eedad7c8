from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_freshbooks_client, invoice_from_path
from app.db import get_db
from app.errors import InvoiceActionError
from app.models.invoice import Invoice
from app.schemas.invoice import (
    InvoiceActionRequest,
    InvoiceActionResult,
    InvoiceActionsRead,
    InvoiceCreatedRead,
    InvoiceCreateRequest,
    InvoiceSyncRead,
    InvoiceVerifyRead,
)
from app.services import invoices as invoice_service
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.lifecycle import InvoiceLifecycleService
from app.services.freshbooks.status import allowed_actions, invoice_state, is_final_state

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _mirror(invoice: Invoice):
    fb_invoice = invoice.primary_freshbooks_invoice
    if fb_invoice is None:
        raise InvoiceActionError("No FreshBooks invoice found")
    return fb_invoice


@router.get("/{invoice_id}/actions", response_model=InvoiceActionsRead)
def list_invoice_actions(invoice: Invoice = Depends(invoice_from_path)):
    return InvoiceActionsRead(
        invoice_id=str(invoice.id),
        state=invoice_state(invoice),
        actions=allowed_actions(invoice),
        is_final=is_final_state(invoice),
    )


@router.post("/{invoice_id}/actions/{action}", response_model=InvoiceActionResult)
def run_invoice_action(
    action: str,
    payload: InvoiceActionRequest | None = Body(default=None),
    invoice: Invoice = Depends(invoice_from_path),
    client: FreshbooksClient = Depends(get_freshbooks_client),
    db: Session = Depends(get_db),
):
    email = payload.email if payload else None
    return invoice_service.run_action(db, invoice, action, email=email, client=client)


@router.post("/{invoice_id}/sync", response_model=InvoiceSyncRead)
def sync_invoice(
    invoice: Invoice = Depends(invoice_from_path),
    client: FreshbooksClient = Depends(get_freshbooks_client),
    db: Session = Depends(get_db),
):
    lifecycle = InvoiceLifecycleService(db, _mirror(invoice), client=client)
    success = lifecycle.sync_from_freshbooks()
    return InvoiceSyncRead(success=success, status=invoice.status, errors=lifecycle.errors)


@router.get("/{invoice_id}/verify", response_model=InvoiceVerifyRead)
def verify_invoice(
    invoice: Invoice = Depends(invoice_from_path),
    client: FreshbooksClient = Depends(get_freshbooks_client),
    db: Session = Depends(get_db),
):
    return InvoiceLifecycleService(db, _mirror(invoice), client=client).verify_sync()


@router.post(
    "/{invoice_id}/freshbooks",
    response_model=InvoiceCreatedRead,
    status_code=status.HTTP_201_CREATED,
)
def create_freshbooks_invoice(
    payload: InvoiceCreateRequest | None = Body(default=None),
    invoice: Invoice = Depends(invoice_from_path),
    client: FreshbooksClient = Depends(get_freshbooks_client),
    db: Session = Depends(get_db),
):
    payload = payload or InvoiceCreateRequest()
    return invoice_service.create_freshbooks_invoice(
        db,
        invoice,
        client_id=payload.client_id,
        lines=[line.model_dump(exclude_none=True) for line in payload.lines],
        client=client,
    )
