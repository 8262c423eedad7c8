from fastapi import Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.invoice import Invoice
from app.models.work_order import WorkOrder
from app.services.freshbooks.client import FreshbooksClient
from app.services.invoices import get_invoice
from app.services.work_orders import get_work_order


def invoice_from_path(invoice_id: str, db: Session = Depends(get_db)) -> Invoice:
    return get_invoice(db, invoice_id)


def work_order_from_path(work_order_id: str, db: Session = Depends(get_db)) -> WorkOrder:
    return get_work_order(db, work_order_id)


def get_freshbooks_client(db: Session = Depends(get_db)):
    """FreshBooks client for one request; overridden with a mock in tests."""
    client = FreshbooksClient(db)
    try:
        yield client
    finally:
        client.close()


def get_webflow_client():
    from app.services.webflow.client import webflow_client

    client = webflow_client()
    try:
        yield client
    finally:
        client.close()
