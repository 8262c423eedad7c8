"""Webflow CMS integration for WRS work orders."""

from app.services.webflow.auto_sync import (
    AutoSyncResult,
    auto_sync_work_order,
    register_auto_sync,
    should_sync_to_webflow,
)
from app.services.webflow.client import RateLimiter, WebflowClient, webflow_client
from app.services.webflow.publishing import publish_work_order, unpublish_work_order
from app.services.webflow.webhooks import extract_items, process_webflow_item, verify_webflow_signature
from app.services.webflow.work_order_sync import (
    SyncItemResult,
    WebflowSyncResult,
    WebflowWorkOrderSync,
    webflow_work_order_sync,
)

__all__ = [
    "AutoSyncResult",
    "RateLimiter",
    "SyncItemResult",
    "WebflowClient",
    "WebflowSyncResult",
    "WebflowWorkOrderSync",
    "auto_sync_work_order",
    "extract_items",
    "process_webflow_item",
    "publish_work_order",
    "register_auto_sync",
    "should_sync_to_webflow",
    "unpublish_work_order",
    "verify_webflow_signature",
    "webflow_client",
    "webflow_work_order_sync",
]
