from fastapi import Depends, FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import JSONResponse, Response

from app.api.freshbooks import router as freshbooks_router
from app.api.invoices import router as invoices_router
from app.api.sync_stats import router as sync_stats_router
from app.api.webhooks import router as webhooks_router
from app.api.work_orders import router as work_orders_router
from app.db import SessionLocal, get_db
from app.errors import register_error_handlers
from app.logging import configure_logging, get_logger
from app.services.webflow.auto_sync import register_auto_sync
from app.telemetry import setup_otel

configure_logging()
logger = get_logger(__name__)

app = FastAPI(title="wrs_sync API")

setup_otel(app)
register_error_handlers(app)
# Work orders committed through request sessions are queued for Webflow
register_auto_sync(SessionLocal)

app.include_router(webhooks_router)
app.include_router(invoices_router)
app.include_router(freshbooks_router)
app.include_router(work_orders_router)
app.include_router(sync_stats_router)


@app.api_route("/health", methods=["GET", "HEAD"])
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_database_unavailable error=%s", exc)
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "error"})
    return {"status": "ok", "database": "ok"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
