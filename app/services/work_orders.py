"""Work order pricing and window/tool replacement."""

from decimal import ROUND_HALF_UP, Decimal

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.models.work_order import Tool, Window, WorkOrder
from app.services.common import coerce_uuid

_CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def get_work_order(db: Session, work_order_id: str) -> WorkOrder:
    work_order = db.get(WorkOrder, coerce_uuid(work_order_id))
    if not work_order or work_order.is_deleted:
        raise HTTPException(status_code=404, detail="Work order not found")
    return work_order


def calculate_subtotal(work_order: WorkOrder) -> Decimal:
    subtotal = Decimal("0")
    for window in work_order.windows:
        for tool in window.tools:
            subtotal += Decimal(str(tool.price or 0))
    return subtotal


def recalculate_totals(work_order: WorkOrder, vat_rate: float | None = None) -> WorkOrder:
    rate = Decimal(str(settings.vat_rate if vat_rate is None else vat_rate))
    subtotal = calculate_subtotal(work_order)
    work_order.total_vat_excluded_price = _money(subtotal)
    work_order.total_vat_included_price = _money(subtotal * (1 + rate))
    work_order.grand_total = work_order.total_vat_included_price
    return work_order


def vat_amount(work_order: WorkOrder) -> Decimal:
    if work_order.total_vat_included_price is None or work_order.total_vat_excluded_price is None:
        return Decimal("0")
    return _money(Decimal(str(work_order.total_vat_included_price)) - Decimal(str(work_order.total_vat_excluded_price)))


def replace_windows(db: Session, work_order: WorkOrder, windows_data: list[dict]) -> list[Window]:
    """Drop every window (and its tools) and rebuild from ``windows_data``.

    Each entry is ``{"location", "items", "prices", "image_url"}``; items and
    prices are parallel lists of equal length.
    """
    for window in list(work_order.windows):
        db.delete(window)
    work_order.windows.clear()
    db.flush()

    created: list[Window] = []
    for position, data in enumerate(windows_data):
        window = Window(
            location=data["location"],
            position=position,
            webflow_image_url=data.get("image_url"),
        )
        for tool_position, (name, price) in enumerate(zip(data["items"], data["prices"])):
            window.tools.append(Tool(name=name, price=_money(price), position=tool_position))
        work_order.windows.append(window)
        created.append(window)
    db.flush()
    return created
