import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class Invoice(Base):
    """Local invoice for a work order; billing itself lives in FreshBooks."""

    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str | None] = mapped_column(String(255))
    slug: Mapped[str | None] = mapped_column(String(255), unique=True)
    work_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("work_orders.id"), index=True
    )
    freshbooks_client_id: Mapped[str | None] = mapped_column(String(64))
    flat_address: Mapped[str | None] = mapped_column(String(255))
    job: Mapped[str | None] = mapped_column(String(255))
    wrs_link: Mapped[str | None] = mapped_column(Text)
    invoice_pdf_link: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(String(40))
    final_status: Mapped[str | None] = mapped_column(String(40))
    status_color: Mapped[str | None] = mapped_column(String(20))
    included_vat_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    excluded_vat_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    is_draft: Mapped[bool] = mapped_column(Boolean, default=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    work_order = relationship("WorkOrder", back_populates="invoices")
    freshbooks_invoices = relationship(
        "FreshbooksInvoice",
        back_populates="invoice",
        order_by="FreshbooksInvoice.created_at",
    )

    @property
    def primary_freshbooks_invoice(self):
        if not self.freshbooks_invoices:
            return None
        return self.freshbooks_invoices[-1]

    @property
    def total_amount(self) -> Decimal:
        return self.included_vat_amount or self.excluded_vat_amount or Decimal("0")
