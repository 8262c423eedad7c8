from prometheus_client import Counter, Histogram

JOB_DURATION = Histogram(
    "wrs_job_duration_seconds",
    "Background job duration in seconds",
    ["job", "status"],
)
JOB_RUNS = Counter(
    "wrs_job_runs_total",
    "Background job runs by outcome",
    ["job", "status"],
)
SYNC_ITEMS = Counter(
    "wrs_sync_items_total",
    "Items processed by integration syncs",
    ["integration", "outcome"],
)
WEBHOOK_EVENTS = Counter(
    "wrs_webhook_events_total",
    "Inbound webhook requests by provider and outcome",
    ["provider", "outcome"],
)


def observe_job(job: str, status: str, duration: float) -> None:
    JOB_DURATION.labels(job=job, status=status).observe(duration)
    JOB_RUNS.labels(job=job, status=status).inc()


def record_sync_item(integration: str, outcome: str, count: int = 1) -> None:
    if count:
        SYNC_ITEMS.labels(integration=integration, outcome=outcome).inc(count)


def record_webhook(provider: str, outcome: str) -> None:
    WEBHOOK_EVENTS.labels(provider=provider, outcome=outcome).inc()
