"""Pull Webflow WRS collection items into local work orders."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.errors import WebflowAPIError
from app.metrics import record_sync_item
from app.models.work_order import WorkOrder
from app.services import work_orders as work_order_service
from app.services.common import is_blank, parse_datetime
from app.services.webflow import mapping
from app.services.webflow.client import WebflowClient, webflow_client

logger = logging.getLogger(__name__)

_PROGRESS_LOG_EVERY = 25


@dataclass
class SyncItemResult:
    success: bool
    work_order_id: str | None = None
    reason: str | None = None
    error: str | None = None


@dataclass
class WebflowSyncResult:
    """Result of a full collection import."""

    synced: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def total_synced(self) -> int:
        return self.synced

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


class WebflowWorkOrderSync:
    """Create or update work orders from Webflow items, keyed by item id."""

    def __init__(self, db: Session, client: WebflowClient | None = None):
        self.db = db
        self._client = client
        self.total_synced = 0
        self.total_skipped = 0
        self.processed_count = 0
        self.errors: list[dict] = []

    def _get_client(self) -> WebflowClient:
        if self._client is None:
            self._client = webflow_client()
        return self._client

    def close(self):
        if self._client:
            self._client.close()
            self._client = None

    def _skip(self, item_id, reason: str | None = None, error: str | None = None) -> SyncItemResult:
        self.total_skipped += 1
        if error:
            self.errors.append({"item_id": item_id, "error": error})
        record_sync_item("webflow", "skipped")
        return SyncItemResult(success=False, reason=reason, error=error)

    def sync_single(self, item: dict) -> SyncItemResult:
        self.processed_count += 1
        item_id = item.get("id")
        field_data = item.get("fieldData") or {}
        if is_blank(field_data.get("project-summary")) or is_blank(field_data.get("name")):
            logger.info("webflow_sync_item_skipped item_id=%s reason=missing_required_fields", item_id)
            return self._skip(item_id, reason="missing_required_fields")

        try:
            work_order = self._apply_item(item)
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.exception("webflow_sync_item_failed item_id=%s", item_id)
            return self._skip(item_id, error=str(exc))

        self.total_synced += 1
        record_sync_item("webflow", "synced")
        self._push_back(work_order)
        return SyncItemResult(success=True, work_order_id=str(work_order.id))

    def _apply_item(self, item: dict) -> WorkOrder:
        item_id = item.get("id")
        work_order = self.db.query(WorkOrder).filter(WorkOrder.webflow_item_id == item_id).first()
        if work_order is None:
            work_order = WorkOrder(webflow_item_id=item_id, name=f"WRS {item_id}")
            self.db.add(work_order)
        work_order.skip_webflow_sync = True
        work_order.skip_auto_sync = True

        for column, value in mapping.build_work_order_attributes(item).items():
            setattr(work_order, column, value)
        created_on = parse_datetime(item.get("createdOn"))
        if created_on:
            work_order.created_at = created_on
        last_updated = parse_datetime(item.get("lastUpdated"))
        if last_updated:
            work_order.updated_at = last_updated

        windows = mapping.extract_windows(item)
        mismatches = sum(window["mismatch"] for window in windows)
        if mismatches:
            logger.warning("webflow_sync_price_mismatch item_id=%s mismatched=%d", item_id, mismatches)

        savepoint = self.db.begin_nested()
        try:
            work_order_service.replace_windows(self.db, work_order, windows)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise
        work_order_service.recalculate_totals(work_order)
        return work_order

    def _push_back(self, work_order: WorkOrder) -> None:
        """Send recalculated totals back to Webflow; failures only log."""
        if not work_order.webflow_item_id:
            return
        try:
            payload = mapping.to_webflow_payload(work_order, is_draft=bool(work_order.is_draft))
            self._get_client().update_item(work_order.webflow_item_id, payload)
        except WebflowAPIError as exc:
            logger.warning(
                "webflow_sync_push_back_failed item_id=%s status=%s error=%s",
                work_order.webflow_item_id,
                exc.status_code,
                exc.message,
            )
        except Exception:
            logger.exception("webflow_sync_push_back_failed item_id=%s", work_order.webflow_item_id)

    def sync_batch(self, items: list[dict]) -> dict:
        total = len(items)
        for index, item in enumerate(items, start=1):
            self.sync_single(item)
            if index % _PROGRESS_LOG_EVERY == 0 or index == total:
                logger.info(
                    "webflow_sync_progress processed=%d total=%d synced=%d skipped=%d",
                    index,
                    total,
                    self.total_synced,
                    self.total_skipped,
                )
        return {"synced": self.total_synced, "skipped": self.total_skipped}

    def import_collection(self) -> WebflowSyncResult:
        start = time.monotonic()
        result = WebflowSyncResult()
        try:
            items = self._get_client().list_all_items()
        except WebflowAPIError as exc:
            logger.error("webflow_import_list_failed error=%s", exc.message)
            result.errors.append({"type": "list_items", "error": exc.message})
            result.duration_seconds = time.monotonic() - start
            return result

        counts = self.sync_batch(items)
        result.synced = counts["synced"]
        result.skipped = counts["skipped"]
        result.errors.extend(self.errors)
        result.duration_seconds = time.monotonic() - start
        return result


def webflow_work_order_sync(db: Session) -> WebflowWorkOrderSync:
    return WebflowWorkOrderSync(db)
