import json
import uuid
from urllib.parse import parse_qsl

from fastapi import APIRouter, Request, Response, status
from starlette.requests import ClientDisconnect
from starlette.responses import JSONResponse

from app.config import settings
from app.db import SessionLocal
from app.errors import FreshbooksError
from app.logging import get_logger
from app.metrics import record_webhook
from app.services.freshbooks.client import FreshbooksClient
from app.services.freshbooks.webhooks import (
    handle_verification,
    is_verification_request,
    verify_freshbooks_signature,
)
from app.services.webflow.webhooks import extract_items, verify_webflow_signature
from app.tasks import freshbooks as freshbooks_tasks
from app.tasks import webflow as webflow_tasks

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _invalid_payload() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"status": "error", "detail": "Invalid payload"},
    )


def _unauthorized() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"status": "error", "detail": "Invalid signature"},
    )


@router.post("/webflow", status_code=status.HTTP_200_OK)
async def webflow_webhook(request: Request):
    """Receive Webflow collection item events and queue a sync per item."""
    trace_id = str(uuid.uuid4())
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.warning("webflow_webhook_client_disconnect trace_id=%s", trace_id)
        return Response(status_code=500)

    try:
        if not verify_webflow_signature(
            body,
            request.headers.get("X-Webflow-Signature"),
            request.headers.get("X-Webflow-Timestamp"),
            settings.webflow_webhook_secret,
        ):
            logger.warning("webflow_webhook_signature_invalid trace_id=%s", trace_id)
            record_webhook("webflow", "unauthorized")
            return _unauthorized()

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("webflow_webhook_invalid_payload trace_id=%s error=%s", trace_id, exc)
            record_webhook("webflow", "invalid")
            return _invalid_payload()
        if not isinstance(payload, dict):
            record_webhook("webflow", "invalid")
            return _invalid_payload()

        items = extract_items(payload)
        for item in items:
            webflow_tasks.sync_webflow_item.delay(item, trace_id=trace_id)
        logger.info(
            "webhook_received channel=webflow trace_id=%s trigger=%s items=%d",
            trace_id,
            payload.get("triggerType"),
            len(items),
        )
        record_webhook("webflow", "queued")
        return {"status": "ok", "processed": len(items)}
    except Exception:
        logger.exception("webflow_webhook_failed trace_id=%s", trace_id)
        record_webhook("webflow", "error")
        return Response(status_code=500)


def _parse_params(body: bytes, content_type: str) -> tuple[dict, bytes]:
    """Return the webhook params and the bytes FreshBooks signed.

    Form posts are signed over the compact JSON encoding of the form fields;
    JSON posts over the raw body.
    """
    text = body.decode("utf-8")
    if "application/json" in content_type:
        params = json.loads(text) if text.strip() else {}
        if not isinstance(params, dict):
            raise ValueError("JSON body must be an object")
        return params, body
    params = dict(parse_qsl(text, keep_blank_values=True))
    return params, json.dumps(params, separators=(",", ":")).encode("utf-8")


@router.post("/freshbooks", status_code=status.HTTP_200_OK)
async def freshbooks_webhook(request: Request):
    """Receive FreshBooks callbacks: verification handshakes and object events."""
    trace_id = str(uuid.uuid4())
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.warning("freshbooks_webhook_client_disconnect trace_id=%s", trace_id)
        return Response(status_code=500)

    try:
        try:
            params, signed = _parse_params(body, request.headers.get("content-type", ""))
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("freshbooks_webhook_invalid_payload trace_id=%s error=%s", trace_id, exc)
            record_webhook("freshbooks", "invalid")
            return _invalid_payload()

        if is_verification_request(params):
            db = SessionLocal()
            client = None
            try:
                client = FreshbooksClient(db)
                outcome = handle_verification(params, client)
            except FreshbooksError as exc:
                logger.error("freshbooks_verification_client_failed trace_id=%s error=%s", trace_id, exc)
                outcome = "verification_failed"
            finally:
                if client is not None:
                    client.close()
                db.close()
            record_webhook("freshbooks", outcome)
            return {"status": outcome, "callback_id": params.get("callback_id") or params.get("id")}

        if not verify_freshbooks_signature(
            signed,
            request.headers.get("X-FreshBooks-Hmac-SHA256"),
            settings.freshbooks_webhook_secret,
        ):
            logger.warning("freshbooks_webhook_signature_invalid trace_id=%s", trace_id)
            record_webhook("freshbooks", "unauthorized")
            return _unauthorized()

        event_name = params.get("name") or params.get("event") or request.headers.get("X-FreshBooks-Event")
        object_id = params.get("object_id")
        logger.info(
            "webhook_received channel=freshbooks trace_id=%s event=%s object_id=%s business_id=%s",
            trace_id,
            event_name,
            object_id,
            params.get("business_id"),
        )
        freshbooks_tasks.process_freshbooks_event.delay(event_name, object_id, trace_id=trace_id)
        record_webhook("freshbooks", "queued")
        return {"status": "ok"}
    except Exception:
        logger.exception("freshbooks_webhook_failed trace_id=%s", trace_id)
        record_webhook("freshbooks", "error")
        return Response(status_code=500)
