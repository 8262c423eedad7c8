"""FreshBooks invoice status codes, normalization and lifecycle rules."""

from __future__ import annotations

DRAFT = 1
SENT = 2
VIEWED = 3
PAID = 4
VOID = 5

_CODE_TO_NAME = {
    DRAFT: "draft",
    SENT: "sent",
    VIEWED: "viewed",
    PAID: "paid",
    VOID: "void",
}
_NAME_TO_CODE = {name: code for code, name in _CODE_TO_NAME.items()}
_NAME_TO_CODE["voided"] = VOID

# Free-text statuses that reached us from older imports and admin edits
_STATUS_ALIASES = {
    "void": "voided",
    "voided + email sent": "voided",
    "voided+email sent": "voided",
    "sent - awaiting payment": "sent",
    "sent-awaiting payment": "sent",
}

VALID_STATUSES = ("draft", "sent", "viewed", "paid", "void", "voided")
FINAL_STATES = frozenset({"paid", "void", "voided"})
UNPAID_STATES = frozenset({"draft", "sent", "viewed"})

STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "draft": ("sent", "void", "voided"),
    "sent": ("viewed", "paid", "void", "voided"),
    "viewed": ("paid", "void", "voided"),
    "paid": (),
    "void": (),
    "voided": (),
}

SEND_INVOICE = "send_invoice"
VOID_INVOICE = "void_invoice"
VOID_INVOICE_WITH_EMAIL = "void_invoice_with_email"
MARK_PAID = "mark_paid"
APPLY_DISCOUNT = "apply_discount"

_OPEN_ACTIONS = (VOID_INVOICE, VOID_INVOICE_WITH_EMAIL, MARK_PAID, APPLY_DISCOUNT)

ACTION_RULES: dict[str, tuple[str, ...]] = {
    "draft": (SEND_INVOICE, VOID_INVOICE, VOID_INVOICE_WITH_EMAIL, APPLY_DISCOUNT, MARK_PAID),
    "sent": _OPEN_ACTIONS,
    "viewed": _OPEN_ACTIONS,
    "partial": _OPEN_ACTIONS,
    "overdue": _OPEN_ACTIONS,
    "disputed": (VOID_INVOICE, VOID_INVOICE_WITH_EMAIL),
    "paid": (),
    "void": (),
    "voided": (),
}

_VOIDABLE = frozenset({"draft", "sent", "viewed", "disputed", "partial", "overdue"})
_PAYABLE = frozenset({"draft", "sent", "viewed", "partial", "overdue"})


# ---------------------------------------------------------------------------
# Numeric <-> string codes
# ---------------------------------------------------------------------------


def to_numeric(status) -> int:
    """Convert a status name or code to the numeric v3 API code.

    Raises:
        ValueError: for unknown names, out-of-range codes or other types.
    """
    if isinstance(status, bool):
        raise ValueError(f"Invalid status: {status!r}")
    if isinstance(status, int):
        if status in _CODE_TO_NAME:
            return status
        raise ValueError(f"Invalid status code: {status}")
    if isinstance(status, str):
        value = status.strip().lower()
        if value.isdigit():
            return to_numeric(int(value))
        if value in _NAME_TO_CODE:
            return _NAME_TO_CODE[value]
        raise ValueError(f"Invalid status: {status!r}")
    raise ValueError(f"Invalid status type: {type(status).__name__}")


def to_string(code) -> str:
    if isinstance(code, str) and code.strip().isdigit():
        code = int(code.strip())
    if isinstance(code, int) and not isinstance(code, bool) and code in _CODE_TO_NAME:
        return _CODE_TO_NAME[code]
    raise ValueError(f"Invalid status code: {code!r}")


def to_numeric_safe(status) -> int | None:
    try:
        return to_numeric(status)
    except ValueError:
        return None


def to_string_safe(code) -> str | None:
    try:
        return to_string(code)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_status(raw) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        raw = to_string_safe(raw)
        if raw is None:
            return None
    value = str(raw).strip().lower()
    if not value:
        return None
    if value.isdigit():
        value = to_string_safe(int(value)) or value
    return _STATUS_ALIASES.get(value, value)


def status_from_freshbooks(data: dict) -> str | None:
    if data.get("vis_state") == 1:
        return "voided"
    return normalize_status(data.get("status") or data.get("v3_status"))


def can_transition(current: str | None, new: str) -> bool:
    if not current:
        return True
    current = normalize_status(current)
    return normalize_status(new) in STATUS_TRANSITIONS.get(current, ())


def is_unpaid(status: str | None) -> bool:
    return normalize_status(status) in UNPAID_STATES


def is_voided(status: str | None) -> bool:
    return normalize_status(status) == "voided"


# ---------------------------------------------------------------------------
# Admin action gating
# ---------------------------------------------------------------------------


def invoice_state(invoice) -> str:
    raw = getattr(invoice, "final_status", None) or getattr(invoice, "status", None) or "draft"
    return normalize_status(raw) or "draft"


def allowed_actions(invoice) -> list[str]:
    return list(ACTION_RULES.get(invoice_state(invoice), ()))


def action_allowed(action: str, invoice) -> bool:
    return action in allowed_actions(invoice)


def can_void(invoice) -> bool:
    return invoice_state(invoice) in _VOIDABLE


def can_send(invoice) -> bool:
    return invoice_state(invoice) == "draft"


def can_mark_paid(invoice) -> bool:
    return invoice_state(invoice) in _PAYABLE


def can_apply_discount(invoice) -> bool:
    return invoice_state(invoice) in _PAYABLE


def is_final_state(invoice) -> bool:
    return invoice_state(invoice) in FINAL_STATES
