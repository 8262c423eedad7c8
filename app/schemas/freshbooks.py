from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class FreshbooksStatusRead(BaseModel):
    connected: bool
    expired: bool
    message: str | None = None
    business_id: str | None = None
    expires_at: datetime | None = None


class SyncQueuedRead(BaseModel):
    message: str
    task_id: str | None = None


class CallbackRead(BaseModel):
    callback_id: str
    event: str | None = None
    uri: str | None = None
    verified: bool = False


class CallbackRegisterRequest(BaseModel):
    uri: str | None = Field(default=None, max_length=2048)
    events: list[str] | None = None


class CallbackRegisterRead(BaseModel):
    created: list[CallbackRead] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
