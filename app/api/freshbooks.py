from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_freshbooks_client
from app.db import get_db
from app.schemas.freshbooks import (
    CallbackRead,
    CallbackRegisterRead,
    CallbackRegisterRequest,
    FreshbooksStatusRead,
    SyncQueuedRead,
)
from app.services.freshbooks import admin as freshbooks_admin
from app.services.freshbooks.client import FreshbooksClient
from app.tasks import freshbooks as freshbooks_tasks

router = APIRouter(prefix="/freshbooks", tags=["freshbooks"])

_SYNC_TASKS = {
    "clients": (freshbooks_tasks.sync_freshbooks_clients, "Client sync job queued"),
    "invoices": (freshbooks_tasks.sync_freshbooks_invoices, "Invoice sync job queued"),
    "payments": (freshbooks_tasks.sync_freshbooks_payments, "Payment sync job queued"),
}


@router.get("/status", response_model=FreshbooksStatusRead)
def get_connection_status(db: Session = Depends(get_db)):
    return freshbooks_admin.connection_status(db)


@router.post("/sync/{kind}", response_model=SyncQueuedRead, status_code=status.HTTP_202_ACCEPTED)
def queue_sync(kind: str):
    if kind not in _SYNC_TASKS:
        raise HTTPException(status_code=404, detail="Unknown sync kind")
    task, message = _SYNC_TASKS[kind]
    queued = task.delay()
    return SyncQueuedRead(message=message, task_id=getattr(queued, "id", None))


@router.get("/callbacks", response_model=list[CallbackRead])
def list_callbacks(client: FreshbooksClient = Depends(get_freshbooks_client)):
    return freshbooks_admin.list_callbacks(client)


@router.post("/callbacks", response_model=CallbackRegisterRead, status_code=status.HTTP_201_CREATED)
def register_callbacks(
    payload: CallbackRegisterRequest | None = Body(default=None),
    client: FreshbooksClient = Depends(get_freshbooks_client),
):
    payload = payload or CallbackRegisterRequest()
    events = payload.events or freshbooks_admin.CALLBACK_EVENTS
    return freshbooks_admin.register_callbacks(client, uri=payload.uri, events=events)


@router.post("/callbacks/{callback_id}/resend", response_model=CallbackRead)
def resend_callback_verification(callback_id: str, client: FreshbooksClient = Depends(get_freshbooks_client)):
    return freshbooks_admin.resend_verification(client, callback_id)


@router.delete("/callbacks/{callback_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_callback(callback_id: str, client: FreshbooksClient = Depends(get_freshbooks_client)):
    freshbooks_admin.delete_callback(client, callback_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
