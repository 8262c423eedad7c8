"""Celery tasks for FreshBooks invoices, clients, payments and webhook events."""

import time

from app.celery_app import celery_app
from app.db import SessionLocal
from app.errors import FreshbooksError, FreshbooksTokenExpiredError
from app.logging import get_logger
from app.metrics import observe_job
from app.services.webhook_dead_letter import write_dead_letter

SYNC_MAX_RETRIES = 3
SYNC_RETRY_BASE_DELAY = 60  # seconds

INBOUND_MAX_RETRIES = 3
INBOUND_RETRY_BASE_DELAY = 60  # seconds

logger = get_logger(__name__)


@celery_app.task(
    name="app.tasks.freshbooks.sync_freshbooks_invoices",
    bind=True,
    max_retries=SYNC_MAX_RETRIES,
    time_limit=900,
    soft_time_limit=840,
)
def sync_freshbooks_invoices(self, freshbooks_id: str | None = None):
    """Import FreshBooks invoices and reconcile them with payments.

    Args:
        freshbooks_id: Sync a single invoice; all invoices when omitted

    Returns:
        Dict with sync result summary
    """
    from app.services.freshbooks.invoice_sync import freshbooks_invoice_sync
    from app.services.sync_stats import record_sync_result

    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    logger.info("FRESHBOOKS_SYNC_START freshbooks_id=%s", freshbooks_id)
    sync_service = freshbooks_invoice_sync(session)
    try:
        if freshbooks_id:
            result = sync_service.sync_invoice(freshbooks_id)
        else:
            result = sync_service.sync_all()
        logger.info(
            "FRESHBOOKS_SYNC_COMPLETE created=%d updated=%d errors=%d duration=%.2fs",
            result.created,
            result.updated,
            len(result.errors),
            result.duration_seconds,
        )
        if result.has_errors:
            status = "partial"
            for error in result.errors:
                logger.warning("FRESHBOOKS_SYNC_ERROR %s", error)

        record_sync_result("freshbooks", result, mode="single" if freshbooks_id else "full")
        return {
            "created": result.created,
            "updated": result.updated,
            "total_synced": result.total_synced,
            "errors": result.errors,
            "duration_seconds": result.duration_seconds,
        }
    except FreshbooksTokenExpiredError as exc:
        status = "error"
        session.rollback()
        logger.error("FRESHBOOKS_SYNC_REAUTH_REQUIRED reauth_url=%s", exc.details.get("reauth_url"))
        raise
    except FreshbooksError as exc:
        status = "retry"
        session.rollback()
        logger.warning(
            "FRESHBOOKS_SYNC_API_ERROR attempt=%s/%s error=%s",
            self.request.retries,
            SYNC_MAX_RETRIES,
            exc.message,
        )
        raise self.retry(exc=exc, countdown=SYNC_RETRY_BASE_DELAY * (2**self.request.retries))
    except Exception as exc:
        status = "error"
        session.rollback()
        logger.exception("FRESHBOOKS_SYNC_FAILED error=%s", exc)
        raise
    finally:
        sync_service.close()
        session.close()
        observe_job("freshbooks_invoice_sync", status, time.monotonic() - start)


def _run_record_sync(
    task,
    session,
    sync_service,
    sync_one,
    object_id: str | None,
    *,
    job: str,
    label: str,
    mode: str,
):
    """Shared body of the client and payment sync tasks.

    Runs ``sync_one(object_id)`` when an id is given, else ``sync_all()``.
    API errors other than an expired token are retried.
    """
    from app.services.sync_stats import record_sync_result

    start = time.monotonic()
    status = "success"
    logger.info("%s_START object_id=%s", label, object_id)
    try:
        result = sync_one(object_id) if object_id else sync_service.sync_all()
        logger.info(
            "%s_COMPLETE created=%d updated=%d errors=%d duration=%.2fs",
            label,
            result.created,
            result.updated,
            len(result.errors),
            result.duration_seconds,
        )
        if result.has_errors:
            status = "partial"
        record_sync_result("freshbooks", result, mode=f"{mode}_{'single' if object_id else 'full'}")
        return {
            "created": result.created,
            "updated": result.updated,
            "total_synced": result.total_synced,
            "errors": result.errors,
            "duration_seconds": result.duration_seconds,
        }
    except FreshbooksTokenExpiredError as exc:
        status = "error"
        session.rollback()
        logger.error("%s_REAUTH_REQUIRED reauth_url=%s", label, exc.details.get("reauth_url"))
        raise
    except FreshbooksError as exc:
        status = "retry"
        session.rollback()
        logger.warning(
            "%s_API_ERROR attempt=%s/%s error=%s", label, task.request.retries, SYNC_MAX_RETRIES, exc.message
        )
        raise task.retry(exc=exc, countdown=SYNC_RETRY_BASE_DELAY * (2**task.request.retries))
    except Exception as exc:
        status = "error"
        session.rollback()
        logger.exception("%s_FAILED error=%s", label, exc)
        raise
    finally:
        sync_service.close()
        session.close()
        observe_job(job, status, time.monotonic() - start)


@celery_app.task(
    name="app.tasks.freshbooks.sync_freshbooks_clients",
    bind=True,
    max_retries=SYNC_MAX_RETRIES,
    time_limit=900,
    soft_time_limit=840,
)
def sync_freshbooks_clients(self, client_id: str | None = None):
    """Mirror FreshBooks clients; one client when ``client_id`` is given."""
    from app.services.freshbooks.client_sync import freshbooks_client_sync

    session = SessionLocal()
    sync_service = freshbooks_client_sync(session)
    return _run_record_sync(
        self,
        session,
        sync_service,
        sync_service.sync_client,
        client_id,
        job="freshbooks_client_sync",
        label="FRESHBOOKS_CLIENT_SYNC",
        mode="clients",
    )


@celery_app.task(
    name="app.tasks.freshbooks.sync_freshbooks_payments",
    bind=True,
    max_retries=SYNC_MAX_RETRIES,
    time_limit=900,
    soft_time_limit=840,
)
def sync_freshbooks_payments(self, payment_id: str | None = None):
    """Mirror FreshBooks payments and reconcile the invoices they belong to."""
    from app.services.freshbooks.payment_sync import freshbooks_payment_sync

    session = SessionLocal()
    sync_service = freshbooks_payment_sync(session)
    return _run_record_sync(
        self,
        session,
        sync_service,
        sync_service.sync_payment,
        payment_id,
        job="freshbooks_payment_sync",
        label="FRESHBOOKS_PAYMENT_SYNC",
        mode="payments",
    )


@celery_app.task(
    name="app.tasks.freshbooks.process_freshbooks_event",
    bind=True,
    max_retries=INBOUND_MAX_RETRIES,
)
def process_freshbooks_event(self, event_name: str, object_id: str, trace_id: str | None = None):
    from app.services.freshbooks.webhooks import process_event

    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    payload = {"name": event_name, "object_id": object_id}
    try:
        outcome = process_event(session, event_name, object_id)
        status = outcome
        if outcome == "failed":
            write_dead_letter(
                channel="freshbooks",
                raw_payload=payload,
                error=f"FreshBooks event {event_name} could not be applied",
                trace_id=trace_id,
                message_id=str(object_id),
                event_name=event_name,
                attempts=self.request.retries + 1,
            )
        logger.info(
            "webhook_processed channel=freshbooks trace_id=%s event=%s object_id=%s outcome=%s",
            trace_id,
            event_name,
            object_id,
            outcome,
        )
        return {"event": event_name, "object_id": object_id, "outcome": outcome}
    except Exception as exc:
        status = "error"
        session.rollback()
        logger.exception(
            "freshbooks_webhook_processing_failed trace_id=%s attempt=%s/%s error=%s",
            trace_id,
            self.request.retries,
            INBOUND_MAX_RETRIES,
            exc,
        )
        try:
            raise self.retry(exc=exc, countdown=INBOUND_RETRY_BASE_DELAY * (2**self.request.retries))
        except self.MaxRetriesExceededError:
            logger.error("freshbooks_webhook_retries_exhausted trace_id=%s object_id=%s", trace_id, object_id)
            write_dead_letter(
                channel="freshbooks",
                raw_payload=payload,
                error=exc,
                trace_id=trace_id,
                message_id=str(object_id),
                event_name=event_name,
                attempts=self.request.retries + 1,
            )
    finally:
        session.close()
        observe_job("freshbooks_webhook_event", status, time.monotonic() - start)
