from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CheckInRequest(BaseModel):
    technician_id: str = Field(min_length=1, max_length=64)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = None
    checked_in_at: datetime | None = None


class CheckOutRequest(BaseModel):
    technician_id: str = Field(min_length=1, max_length=64)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = None
    checked_out_at: datetime | None = None


class WorkSessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    technician_id: str
    work_order_id: UUID
    checked_in_at: datetime
    checked_out_at: datetime | None = None
    check_in_latitude: float | None = None
    check_in_longitude: float | None = None
    check_out_latitude: float | None = None
    check_out_longitude: float | None = None
    address: str | None = None


class CheckOutRead(BaseModel):
    session: WorkSessionRead
    hours_worked: float
