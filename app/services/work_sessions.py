"""Technician check-in / check-out against work orders."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from app.config import settings
from app.errors import WorkSessionError
from app.models.work_order import WorkOrder, WorkOrderStatus
from app.models.work_session import WorkSession
from app.services.common import utcnow

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in meters (haversine)."""
    lat1_rad, lon1_rad = math.radians(lat1), math.radians(lon1)
    lat2_rad, lon2_rad = math.radians(lat2), math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass
class CheckOutResult:
    session: WorkSession
    hours_worked: float


def active_session(db: Session, technician_id: str, work_order: WorkOrder | None = None) -> WorkSession | None:
    query = db.query(WorkSession).filter(
        WorkSession.technician_id == technician_id,
        WorkSession.checked_out_at.is_(None),
    )
    if work_order is not None:
        query = query.filter(WorkSession.work_order_id == work_order.id)
    return query.order_by(WorkSession.checked_in_at.desc()).first()


def _check_proximity(work_order: WorkOrder, latitude: float | None, longitude: float | None) -> None:
    if None in (work_order.latitude, work_order.longitude, latitude, longitude):
        return
    radius = settings.check_in_radius_meters
    distance = distance_meters(work_order.latitude, work_order.longitude, latitude, longitude)
    if distance > radius:
        raise WorkSessionError(
            f"You must be within {radius:g} meters of the building to check in. "
            f"Current distance: {distance:.1f} meters. Please move closer.",
            details={"distance_meters": round(distance, 1), "radius_meters": radius},
        )


def check_in(
    db: Session,
    technician_id: str,
    work_order: WorkOrder,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
    checked_in_at: datetime | None = None,
    require_approved: bool = True,
) -> WorkSession:
    # One open session per technician, across every work order
    if active_session(db, technician_id) is not None:
        raise WorkSessionError("You already have an active check-in. Please check out first.")
    if require_approved and work_order.status != WorkOrderStatus.approved:
        raise WorkSessionError("You can only check in to approved works.")
    _check_proximity(work_order, latitude, longitude)

    session = WorkSession(
        technician_id=technician_id,
        work_order_id=work_order.id,
        checked_in_at=checked_in_at or utcnow(),
        check_in_latitude=latitude,
        check_in_longitude=longitude,
        address=address or work_order.address,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("work_session_check_in session=%s technician=%s work_order=%s", session.id, technician_id, work_order.id)
    return session


def check_out(
    db: Session,
    technician_id: str,
    work_order: WorkOrder,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
    checked_out_at: datetime | None = None,
) -> CheckOutResult:
    session = active_session(db, technician_id, work_order)
    if session is None:
        raise WorkSessionError("No active check-in found. Please check in first.")
    checked_out_at = checked_out_at or utcnow()
    if _aware(checked_out_at) <= _aware(session.checked_in_at):
        raise WorkSessionError("Check-out time must be after check-in time")

    session.checked_out_at = checked_out_at
    session.check_out_latitude = latitude
    session.check_out_longitude = longitude
    if address:
        session.address = address
    db.commit()
    db.refresh(session)
    hours = session.duration_hours or 0.0
    logger.info(
        "work_session_check_out session=%s technician=%s work_order=%s hours=%s",
        session.id,
        technician_id,
        work_order.id,
        hours,
    )
    return CheckOutResult(session=session, hours_worked=hours)
