"""Push local work order changes to Webflow as draft items."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import event
from sqlalchemy.orm import Session

from app.config import settings
from app.models.work_order import WorkOrder
from app.services.common import is_blank
from app.services.webflow.client import WebflowClient, webflow_client
from app.services.webflow.mapping import to_webflow_payload

logger = logging.getLogger(__name__)

_PENDING_KEY = "webflow_auto_sync_ids"


@dataclass
class AutoSyncResult:
    success: bool
    action: str | None = None
    webflow_item_id: str | None = None
    reason: str | None = None


def should_sync_to_webflow(work_order: WorkOrder) -> bool:
    if work_order.is_deleted or work_order.skip_webflow_sync:
        return False
    return bool(settings.webflow_wrs_collection_id)


def _has_required_fields(work_order: WorkOrder) -> bool:
    return not any(is_blank(value) for value in (work_order.name, work_order.address, work_order.slug))


def auto_sync_work_order(db: Session, work_order: WorkOrder, client: WebflowClient | None = None) -> AutoSyncResult:
    """Create or update the Webflow draft item for ``work_order``.

    Published items are never touched. WebflowAPIError propagates so the
    calling task can retry.
    """
    if work_order.is_deleted:
        return AutoSyncResult(success=False, reason="record_deleted")
    if not (work_order.is_draft or not work_order.webflow_item_id):
        return AutoSyncResult(success=False, reason="not_draft")
    if not _has_required_fields(work_order):
        logger.info("webflow_auto_sync_invalid work_order_id=%s", work_order.id)
        return AutoSyncResult(success=False, reason="invalid_data")

    owns_client = client is None
    client = client or webflow_client()
    try:
        if not work_order.webflow_item_id:
            response = client.create_item(to_webflow_payload(work_order, is_draft=True))
            item_id = response.get("id")
            work_order.webflow_item_id = item_id
            work_order.skip_auto_sync = True
            db.commit()
            logger.info("webflow_auto_sync_created work_order_id=%s item_id=%s", work_order.id, item_id)
            return AutoSyncResult(success=True, action="created", webflow_item_id=item_id)

        item_id = work_order.webflow_item_id
        if not work_order.is_draft:
            return AutoSyncResult(success=False, reason="item_published", webflow_item_id=item_id)
        client.update_item(item_id, to_webflow_payload(work_order, is_draft=True))
        logger.info("webflow_auto_sync_updated work_order_id=%s item_id=%s", work_order.id, item_id)
        return AutoSyncResult(success=True, action="updated", webflow_item_id=item_id)
    finally:
        if owns_client:
            client.close()


# ---------------------------------------------------------------------------
# Session hooks: enqueue an auto-sync after a commit that touched work orders
# ---------------------------------------------------------------------------


def _collect_work_orders(session: Session, flush_context) -> None:
    pending = session.info.setdefault(_PENDING_KEY, set())
    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, WorkOrder) or obj.skip_auto_sync:
            continue
        if should_sync_to_webflow(obj):
            pending.add(obj.id)


def _enqueue_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    from app.tasks.webflow import auto_sync_work_order as auto_sync_task

    for work_order_id in pending:
        try:
            auto_sync_task.delay(str(work_order_id))
        except Exception:
            logger.exception("webflow_auto_sync_enqueue_failed work_order_id=%s", work_order_id)


def _discard_pending(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def register_auto_sync(target) -> None:
    """Attach the auto-sync hooks to a Session class or sessionmaker."""
    if event.contains(target, "after_commit", _enqueue_pending):
        return
    event.listen(target, "after_flush", _collect_work_orders)
    event.listen(target, "after_commit", _enqueue_pending)
    event.listen(target, "after_rollback", _discard_pending)
