from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_webflow_client, work_order_from_path
from app.db import get_db
from app.models.work_order import WorkOrder
from app.schemas.work_order import WebflowPublishRead, WebflowSyncRead
from app.schemas.work_session import CheckInRequest, CheckOutRead, CheckOutRequest, WorkSessionRead
from app.services import work_sessions as work_session_service
from app.services.webflow.auto_sync import auto_sync_work_order
from app.services.webflow.client import WebflowClient
from app.services.webflow.publishing import publish_work_order, unpublish_work_order

router = APIRouter(prefix="/work-orders", tags=["work-orders"])


@router.post("/{work_order_id}/webflow-sync", response_model=WebflowSyncRead)
def sync_work_order_to_webflow(
    work_order: WorkOrder = Depends(work_order_from_path),
    client: WebflowClient = Depends(get_webflow_client),
    db: Session = Depends(get_db),
):
    result = auto_sync_work_order(db, work_order, client=client)
    return WebflowSyncRead(
        work_order_id=str(work_order.id),
        success=result.success,
        action=result.action,
        webflow_item_id=result.webflow_item_id,
        reason=result.reason,
    )


@router.post("/{work_order_id}/webflow/publish", response_model=WebflowPublishRead)
def publish_to_webflow(
    work_order: WorkOrder = Depends(work_order_from_path),
    client: WebflowClient = Depends(get_webflow_client),
    db: Session = Depends(get_db),
):
    return publish_work_order(db, work_order, client=client)


@router.post("/{work_order_id}/webflow/unpublish", response_model=WebflowPublishRead)
def unpublish_from_webflow(
    work_order: WorkOrder = Depends(work_order_from_path),
    client: WebflowClient = Depends(get_webflow_client),
    db: Session = Depends(get_db),
):
    return unpublish_work_order(db, work_order, client=client)


@router.post(
    "/{work_order_id}/check-in",
    response_model=WorkSessionRead,
    status_code=status.HTTP_201_CREATED,
)
def check_in(
    payload: CheckInRequest,
    work_order: WorkOrder = Depends(work_order_from_path),
    db: Session = Depends(get_db),
):
    return work_session_service.check_in(
        db,
        payload.technician_id,
        work_order,
        latitude=payload.latitude,
        longitude=payload.longitude,
        address=payload.address,
        checked_in_at=payload.checked_in_at,
    )


@router.post(
    "/{work_order_id}/check-out",
    response_model=CheckOutRead,
    status_code=status.HTTP_201_CREATED,
)
def check_out(
    payload: CheckOutRequest,
    work_order: WorkOrder = Depends(work_order_from_path),
    db: Session = Depends(get_db),
):
    result = work_session_service.check_out(
        db,
        payload.technician_id,
        work_order,
        latitude=payload.latitude,
        longitude=payload.longitude,
        address=payload.address,
        checked_out_at=payload.checked_out_at,
    )
    return CheckOutRead(
        session=WorkSessionRead.model_validate(result.session),
        hours_worked=result.hours_worked,
    )
