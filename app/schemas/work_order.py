from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class WebflowSyncRead(BaseModel):
    work_order_id: str
    success: bool
    action: str | None = None
    webflow_item_id: str | None = None
    reason: str | None = None


class SyncStatsRead(BaseModel):
    integration: str
    last_sync: dict | None = None
    history: list[dict]
    daily: dict


class WebflowPublishRead(BaseModel):
    work_order_id: str
    webflow_item_id: str | None = None
    action: str
    is_draft: bool
    last_published: datetime | None = None
