from app.models.freshbooks import (  # noqa: F401
    FreshbooksClient,
    FreshbooksInvoice,
    FreshbooksPayment,
    FreshbooksToken,
)
from app.models.invoice import Invoice  # noqa: F401
from app.models.webhook_dead_letter import WebhookDeadLetter  # noqa: F401
from app.models.work_order import Tool, Window, WorkOrder, WorkOrderStatus  # noqa: F401
from app.models.work_session import WorkSession  # noqa: F401
