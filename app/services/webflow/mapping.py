"""Field mapping between WRS work orders and Webflow collection items.

Webflow field slugs drifted over the life of the collection (``window-1-items``
became ``window-1-items-2`` and so on), so inbound lookups try every known
slug in order and outbound payloads write the current ones.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.work_order import Tool, Window, WorkOrder, WorkOrderStatus
from app.services.common import is_blank, parse_datetime, to_decimal

MAX_INBOUND_WINDOWS = 10
MAX_OUTBOUND_WINDOWS = 5

APPROVED_COLOR = "#024900"
REJECTED_COLORS = {"#750002", "#740000"}

_PRICE_KEYS = {
    "total_vat_included_price": "total-incl-vat",
    "total_vat_excluded_price": "total-exc-vat",
    "grand_total": "grand-total",
}


def first_present(field_data: dict, *keys: str):
    for key in keys:
        value = field_data.get(key)
        if not is_blank(value):
            return value
    return None


def _camelize(key: str) -> str:
    return "".join(part.capitalize() for part in key.replace("_", "-").split("-"))


def extract_price(field_data: dict, key: str) -> float:
    value = first_present(field_data, key, key.replace("-", "_"), _camelize(key))
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def status_from_color(color: str | None) -> WorkOrderStatus:
    normalized = (color or "").strip().lower()
    if normalized == APPROVED_COLOR:
        return WorkOrderStatus.approved
    if normalized in REJECTED_COLORS:
        return WorkOrderStatus.rejected
    return WorkOrderStatus.pending


def _image_url(value) -> str | None:
    if isinstance(value, dict):
        return value.get("url")
    if isinstance(value, str) and value:
        return value
    return None


def build_work_order_attributes(item: dict) -> dict:
    """Map a Webflow item to WorkOrder column values."""
    field_data = item.get("fieldData") or {}
    item_id = item.get("id")
    status_color = field_data.get("accepted-declined")
    attrs = {
        "name": field_data.get("name") or f"WRS {item_id}",
        "address": field_data.get("project-summary"),
        "details": field_data.get("project-summary"),
        "flat_number": field_data.get("flat-number"),
        "reference_number": first_present(field_data, "reference-number", "reference_number", "referenceNumber"),
        "slug": field_data.get("slug") or f"wrs-{item_id}",
        "status": status_from_color(status_color),
        "status_color": status_color,
        "last_published": parse_datetime(item.get("lastPublished")),
        "is_draft": bool(item.get("isDraft")),
        "is_archived": bool(item.get("isArchived")),
        "webflow_main_image_url": _image_url(field_data.get("main-project-image")),
    }
    for column, key in _PRICE_KEYS.items():
        attrs[column] = Decimal(str(extract_price(field_data, key)))
    return attrs


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------


def _location_key(index: int) -> str:
    return "window-location" if index == 1 else f"window-{index}-location"


def _items_keys(index: int) -> tuple[str, ...]:
    if index == 1:
        return ("window-1-items-2", "window-1-items", "window-items")
    return (f"window-{index}-items-2", f"window-{index}-items")


def _prices_keys(index: int) -> tuple[str, ...]:
    if index == 1:
        return ("window-1-items-prices-3", "window-1-items-prices", "window-items-prices")
    return (f"window-{index}-items-prices-3", f"window-{index}-items-prices")


def _window_image(field_data: dict, index: int) -> str | None:
    if index == 1:
        return _image_url(field_data.get("main-project-image"))
    return _image_url(field_data.get(f"window-{index}-image") or field_data.get(f"window-{index}-image-url"))


def parse_items(value) -> list[str]:
    if is_blank(value):
        return []
    return [line.strip() for line in str(value).splitlines() if line.strip()]


def _to_int(value: str) -> int:
    try:
        return int(float(value))
    except (OverflowError, ValueError):
        return 0


def parse_prices(value) -> list[int]:
    return [_to_int(line) for line in parse_items(value)]


def normalize_prices(items: list[str], prices: list[int]) -> tuple[list[int], int]:
    """Pad with zeros or truncate so there is one price per item.

    Returns the adjusted prices and the size of the mismatch (0 when the
    item had no prices at all).
    """
    mismatch = abs(len(items) - len(prices)) if prices else 0
    if len(prices) < len(items):
        prices = prices + [0] * (len(items) - len(prices))
    return prices[: len(items)], mismatch


def extract_windows(item: dict) -> list[dict]:
    field_data = item.get("fieldData") or {}
    windows = []
    for index in range(1, MAX_INBOUND_WINDOWS + 1):
        location = field_data.get(_location_key(index))
        if is_blank(location):
            continue
        items = parse_items(first_present(field_data, *_items_keys(index)))
        if not items:
            continue
        prices, mismatch = normalize_prices(items, parse_prices(first_present(field_data, *_prices_keys(index))))
        windows.append(
            {
                "index": index,
                "location": str(location).strip(),
                "items": items,
                "prices": prices,
                "mismatch": mismatch,
                "image_url": _window_image(field_data, index),
            }
        )
    return windows


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def _format_price(price) -> str:
    value = Decimal(str(price or 0))
    if value == value.to_integral_value():
        return str(int(value))
    return str(value.normalize())


def _money(value) -> float | None:
    if value is None:
        return None
    return float(value)


def to_webflow_fields(work_order: WorkOrder) -> dict:
    windows = list(work_order.windows)

    def window(index: int) -> Window | None:
        return windows[index - 1] if len(windows) >= index else None

    def names(w: Window | None) -> str | None:
        return "\n".join(tool.name for tool in w.tools) if w else None

    def prices(w: Window | None) -> str | None:
        return "\n".join(_format_price(tool.price) for tool in w.tools) if w else None

    first = window(1)
    fields = {
        "reference-number": work_order.reference_number,
        "project-summary": work_order.address,
        "flat-number": work_order.flat_number,
        "main-project-image": first.effective_image_url if first else None,
        "name": work_order.name,
        "slug": work_order.slug,
        "window-location": first.location if first else None,
        "window-1-items-2": names(first),
        "window-1-items-prices-3": prices(first),
    }
    for index in range(2, MAX_OUTBOUND_WINDOWS + 1):
        current = window(index)
        fields[f"window-{index}"] = current.effective_image_url if current else None
        fields[f"window-{index}-location"] = current.location if current else None
        fields[f"window-{index}-items"] = names(current)
        fields[f"window-{index}-items-prices"] = prices(current)
    fields.update(
        {
            "total-incl-vat": _money(work_order.total_vat_included_price),
            "total-exc-vat": _money(work_order.total_vat_excluded_price),
            "grand-total": _money(work_order.grand_total),
            "accepted-declined": work_order.status_color,
            "accepted-decline": work_order.status.value if work_order.status else None,
        }
    )
    return {key: value for key, value in fields.items() if value is not None}


def to_webflow_payload(work_order: WorkOrder, is_draft: bool | None = None) -> dict:
    if is_draft is None:
        is_draft = work_order.is_draft is None or work_order.is_draft
    return {
        "fieldData": to_webflow_fields(work_order),
        "isArchived": bool(work_order.is_archived),
        "isDraft": is_draft,
    }


# ---------------------------------------------------------------------------
# Collection mapper (bulk import of raw collection exports)
# ---------------------------------------------------------------------------

_COLLECTION_WINDOW_KEYS = {
    1: ("window-location", "window-1-items-2", "window-1-items-prices-3"),
    2: ("window-2-location", "window-2-items-2", "window-2-items-prices-3"),
    3: ("window-3-location", "window-3-items", "window-3-items-prices"),
    4: ("window-4-location", "window-4-items", "window-4-items-prices"),
    5: ("window-5-location", "window-5-items", "window-5-items-prices"),
}


def _split_csv(value) -> list[str]:
    return [part.strip() for part in str(value).split(",")]


def _collection_price(value) -> Decimal:
    """Non-numeric, blank or infinite prices count as zero."""
    price = to_decimal(value.strip() if isinstance(value, str) else value)
    if price is None or not price.is_finite():
        return Decimal("0")
    return price


def from_webflow(db: Session, item: dict, work_order: WorkOrder | None = None) -> WorkOrder:
    """Apply a raw collection item onto a work order without the sync rules.

    Windows are matched by location and kept; a window's tools are replaced
    only when both its items and prices fields are filled in (comma
    separated in exported collections).
    """
    field_data = item.get("fieldData") or {}
    if work_order is None:
        work_order = WorkOrder(name=field_data.get("name") or "")
        db.add(work_order)

    work_order.name = field_data.get("name") or work_order.name
    work_order.slug = field_data.get("slug")
    work_order.reference_number = field_data.get("reference-number")
    work_order.address = field_data.get("project-summary")
    work_order.flat_number = field_data.get("flat-number")
    for column, key in _PRICE_KEYS.items():
        value = field_data.get(key)
        setattr(work_order, column, _collection_price(value) if value is not None else None)
    status = field_data.get("accepted-decline")
    if status in WorkOrderStatus.__members__:
        work_order.status = WorkOrderStatus[status]
    work_order.status_color = field_data.get("accepted-declined")

    for location_key, items_key, prices_key in _COLLECTION_WINDOW_KEYS.values():
        location = field_data.get(location_key)
        if is_blank(location):
            continue
        window = next((w for w in work_order.windows if w.location == location), None)
        if window is None:
            window = Window(location=location, position=len(work_order.windows))
            work_order.windows.append(window)
        items_text = field_data.get(items_key)
        prices_text = field_data.get(prices_key)
        if is_blank(items_text) or is_blank(prices_text):
            continue
        item_names = _split_csv(items_text)
        item_prices = [_collection_price(raw) for raw in _split_csv(prices_text)]
        window.tools.clear()
        for position, name in enumerate(item_names):
            price = item_prices[position] if position < len(item_prices) else Decimal("0")
            window.tools.append(Tool(name=name, price=price, position=position))
    db.flush()
    return work_order
