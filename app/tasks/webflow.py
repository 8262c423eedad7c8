"""Celery tasks for the Webflow work-order collection."""

import time

from app.celery_app import celery_app
from app.db import SessionLocal
from app.errors import WebflowAPIError
from app.logging import get_logger
from app.metrics import observe_job
from app.models.work_order import WorkOrder
from app.services.common import coerce_uuid
from app.services.webhook_dead_letter import write_dead_letter

AUTO_SYNC_MAX_RETRIES = 3
AUTO_SYNC_RETRY_BASE_DELAY = 30  # seconds

INBOUND_MAX_RETRIES = 3
INBOUND_RETRY_BASE_DELAY = 60  # seconds

logger = get_logger(__name__)


@celery_app.task(
    name="app.tasks.webflow.auto_sync_work_order",
    bind=True,
    max_retries=AUTO_SYNC_MAX_RETRIES,
    time_limit=120,
    soft_time_limit=90,
)
def auto_sync_work_order(self, work_order_id: str):
    """Push one work order to Webflow as a draft item.

    Args:
        work_order_id: UUID of the WorkOrder

    Returns:
        Dict with the auto-sync outcome
    """
    from app.services.webflow.auto_sync import auto_sync_work_order as run_auto_sync

    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    logger.info("WEBFLOW_AUTO_SYNC_START work_order_id=%s", work_order_id)
    try:
        work_order = session.get(WorkOrder, coerce_uuid(work_order_id))
        if work_order is None or work_order.is_deleted:
            status = "skipped"
            logger.info("WEBFLOW_AUTO_SYNC_SKIPPED work_order_id=%s reason=not_found", work_order_id)
            return {"success": False, "reason": "not_found", "work_order_id": work_order_id}

        result = run_auto_sync(session, work_order)
        if not result.success:
            status = "skipped"
        logger.info(
            "WEBFLOW_AUTO_SYNC_COMPLETE work_order_id=%s action=%s reason=%s item_id=%s",
            work_order_id,
            result.action,
            result.reason,
            result.webflow_item_id,
        )
        return {
            "success": result.success,
            "action": result.action,
            "reason": result.reason,
            "webflow_item_id": result.webflow_item_id,
            "work_order_id": work_order_id,
        }
    except WebflowAPIError as exc:
        status = "retry"
        session.rollback()
        logger.warning(
            "WEBFLOW_AUTO_SYNC_API_ERROR work_order_id=%s attempt=%s/%s error=%s",
            work_order_id,
            self.request.retries,
            AUTO_SYNC_MAX_RETRIES,
            exc.message,
        )
        raise self.retry(exc=exc, countdown=AUTO_SYNC_RETRY_BASE_DELAY * (2**self.request.retries))
    except Exception as exc:
        status = "error"
        session.rollback()
        logger.exception("WEBFLOW_AUTO_SYNC_FAILED work_order_id=%s error=%s", work_order_id, exc)
        raise
    finally:
        session.close()
        observe_job("webflow_auto_sync", status, time.monotonic() - start)


@celery_app.task(
    name="app.tasks.webflow.sync_webflow_item",
    bind=True,
    max_retries=INBOUND_MAX_RETRIES,
)
def sync_webflow_item(self, item: dict, trace_id: str | None = None):
    from app.services.webflow.webhooks import process_webflow_item

    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    item_id = item.get("id") if isinstance(item, dict) else None
    try:
        result = process_webflow_item(session, item)
        if not result.get("success"):
            status = "failed"
            write_dead_letter(
                channel="webflow",
                raw_payload=item,
                error=result.get("error") or result.get("reason") or "sync failed",
                trace_id=trace_id,
                message_id=item_id,
                attempts=self.request.retries + 1,
            )
        logger.info("webhook_processed channel=webflow trace_id=%s item_id=%s status=%s", trace_id, item_id, status)
        return result
    except Exception as exc:
        status = "error"
        session.rollback()
        logger.exception(
            "webflow_webhook_processing_failed trace_id=%s attempt=%s/%s error=%s",
            trace_id,
            self.request.retries,
            INBOUND_MAX_RETRIES,
            exc,
        )
        try:
            raise self.retry(exc=exc, countdown=INBOUND_RETRY_BASE_DELAY * (2**self.request.retries))
        except self.MaxRetriesExceededError:
            logger.error("webflow_webhook_retries_exhausted trace_id=%s item_id=%s", trace_id, item_id)
            write_dead_letter(
                channel="webflow",
                raw_payload=item,
                error=exc,
                trace_id=trace_id,
                message_id=item_id,
                attempts=self.request.retries + 1,
            )
    finally:
        session.close()
        observe_job("webflow_webhook_item", status, time.monotonic() - start)


@celery_app.task(
    name="app.tasks.webflow.import_webflow_collection",
    time_limit=1800,
    soft_time_limit=1740,
)
def import_webflow_collection():
    """Import every item of the WRS collection into local work orders."""
    from app.services.sync_stats import record_sync_result
    from app.services.webflow.work_order_sync import webflow_work_order_sync

    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    logger.info("WEBFLOW_IMPORT_START")
    sync_service = webflow_work_order_sync(session)
    try:
        result = sync_service.import_collection()
        logger.info(
            "WEBFLOW_IMPORT_COMPLETE synced=%d skipped=%d errors=%d duration=%.2fs",
            result.synced,
            result.skipped,
            len(result.errors),
            result.duration_seconds,
        )
        if result.has_errors:
            status = "partial"
            for error in result.errors:
                logger.warning("WEBFLOW_IMPORT_ERROR %s", error)

        record_sync_result("webflow", result)
        return {
            "synced": result.synced,
            "skipped": result.skipped,
            "errors": result.errors,
            "duration_seconds": result.duration_seconds,
        }
    except Exception as exc:
        status = "error"
        logger.exception("WEBFLOW_IMPORT_FAILED error=%s", exc)
        session.rollback()
        raise
    finally:
        sync_service.close()
        session.close()
        observe_job("webflow_import", status, time.monotonic() - start)
