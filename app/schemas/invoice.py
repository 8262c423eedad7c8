from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class InvoiceActionRequest(BaseModel):
    email: str | None = Field(default=None, max_length=255)


class InvoiceActionResult(BaseModel):
    message: str


class InvoiceActionsRead(BaseModel):
    invoice_id: str
    state: str
    actions: list[str]
    is_final: bool


class InvoiceSyncRead(BaseModel):
    success: bool
    status: str | None = None
    errors: list[str] = Field(default_factory=list)


class InvoiceVerifyRead(BaseModel):
    synced: bool
    errors: list[str] = Field(default_factory=list)


class InvoiceLineIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    quantity: int = Field(default=1, ge=1)
    cost: Decimal


class InvoiceCreateRequest(BaseModel):
    client_id: str | None = Field(default=None, max_length=64)
    lines: list[InvoiceLineIn] = Field(default_factory=list)


class InvoiceCreatedRead(BaseModel):
    freshbooks_id: str
    invoice_number: str | None = None
    status: str | None = None
    payment_link: str | None = None
    pdf_url: str | None = None
