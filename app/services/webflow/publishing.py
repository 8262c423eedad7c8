"""Publish and unpublish the Webflow items of synced work orders."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from app.errors import WebflowPublishError
from app.models.work_order import WorkOrder
from app.services.webflow.client import WebflowClient, webflow_client
from app.services.webflow.mapping import to_webflow_payload

logger = logging.getLogger(__name__)


def _require_item(work_order: WorkOrder) -> str:
    if work_order.is_deleted:
        raise WebflowPublishError("Work order is deleted")
    if not work_order.webflow_item_id:
        raise WebflowPublishError("Work order has not been synced to Webflow")
    return work_order.webflow_item_id


def _result(work_order: WorkOrder, action: str) -> dict:
    return {
        "work_order_id": str(work_order.id),
        "webflow_item_id": work_order.webflow_item_id,
        "action": action,
        "is_draft": work_order.is_draft,
        "last_published": work_order.last_published,
    }


def publish_work_order(db: Session, work_order: WorkOrder, client: WebflowClient | None = None) -> dict:
    """Stage the current fields as a non-draft item, then publish it live.

    Once published, auto-sync leaves the item alone.
    """
    item_id = _require_item(work_order)
    owns_client = client is None
    client = client or webflow_client()
    try:
        client.update_item(item_id, to_webflow_payload(work_order, is_draft=False))
        response = client.publish_items([item_id])
    finally:
        if owns_client:
            client.close()
    if response.get("errors"):
        raise WebflowPublishError("Webflow did not publish the item", details={"errors": response["errors"]})

    work_order.skip_auto_sync = True
    work_order.is_draft = False
    work_order.last_published = datetime.now(UTC)
    db.commit()
    logger.info("webflow_item_published work_order_id=%s item_id=%s", work_order.id, item_id)
    return _result(work_order, "published")


def unpublish_work_order(db: Session, work_order: WorkOrder, client: WebflowClient | None = None) -> dict:
    item_id = _require_item(work_order)
    owns_client = client is None
    client = client or webflow_client()
    try:
        client.unpublish_items([item_id])
    finally:
        if owns_client:
            client.close()

    work_order.skip_auto_sync = True
    work_order.is_draft = True
    db.commit()
    logger.info("webflow_item_unpublished work_order_id=%s item_id=%s", work_order.id, item_id)
    return _result(work_order, "unpublished")
