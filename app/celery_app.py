from celery import Celery
from celery.signals import worker_process_init

from app.config import settings

celery_app = Celery(
    "wrs_sync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.webflow", "app.tasks.freshbooks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "freshbooks-client-sync": {
            "task": "app.tasks.freshbooks.sync_freshbooks_clients",
            "schedule": 6 * 60 * 60,
        },
        "freshbooks-invoice-sync": {
            "task": "app.tasks.freshbooks.sync_freshbooks_invoices",
            "schedule": 60 * 60,
        },
        "freshbooks-payment-sync": {
            "task": "app.tasks.freshbooks.sync_freshbooks_payments",
            "schedule": 60 * 60,
        },
        "webflow-collection-import": {
            "task": "app.tasks.webflow.import_webflow_collection",
            "schedule": 6 * 60 * 60,
        },
    },
)


@worker_process_init.connect
def _init_worker(**_kwargs):
    from app.db import SessionLocal
    from app.logging import configure_logging
    from app.services.webflow.auto_sync import register_auto_sync

    configure_logging()
    register_auto_sync(SessionLocal)
