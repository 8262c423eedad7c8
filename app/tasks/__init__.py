from app.tasks.freshbooks import (
    process_freshbooks_event,
    sync_freshbooks_clients,
    sync_freshbooks_invoices,
    sync_freshbooks_payments,
)
from app.tasks.webflow import auto_sync_work_order, import_webflow_collection, sync_webflow_item

__all__ = [
    "auto_sync_work_order",
    "import_webflow_collection",
    "process_freshbooks_event",
    "sync_freshbooks_clients",
    "sync_freshbooks_invoices",
    "sync_freshbooks_payments",
    "sync_webflow_item",
]
