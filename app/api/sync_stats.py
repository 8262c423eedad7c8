from fastapi import APIRouter, HTTPException, Query

from app.schemas.work_order import SyncStatsRead
from app.services import sync_stats

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/stats/{integration}", response_model=SyncStatsRead)
def get_sync_stats(integration: str, limit: int = Query(default=10, ge=1, le=20)):
    if integration not in sync_stats.INTEGRATIONS:
        raise HTTPException(status_code=404, detail="Unknown integration")
    return SyncStatsRead(
        integration=integration,
        last_sync=sync_stats.get_last_sync(integration),
        history=sync_stats.get_sync_history(integration, limit=limit),
        daily=sync_stats.get_daily_stats(integration),
    )
