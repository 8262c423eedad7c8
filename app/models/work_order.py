import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class WorkOrderStatus(enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class WorkOrder(Base):
    """Window Schedule Repair (WRS) job, mirrored to a Webflow CMS item."""

    __tablename__ = "work_orders"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(255), unique=True)
    reference_number: Mapped[str | None] = mapped_column(String(120))
    address: Mapped[str | None] = mapped_column(Text)
    flat_number: Mapped[str | None] = mapped_column(String(60))
    details: Mapped[str | None] = mapped_column(Text)
    status: Mapped[WorkOrderStatus] = mapped_column(Enum(WorkOrderStatus), default=WorkOrderStatus.pending)
    status_color: Mapped[str | None] = mapped_column(String(20))
    is_draft: Mapped[bool] = mapped_column(Boolean, default=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    webflow_item_id: Mapped[str | None] = mapped_column(String(64), unique=True, index=True)
    webflow_main_image_url: Mapped[str | None] = mapped_column(Text)
    last_published: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    total_vat_excluded_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    total_vat_included_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    grand_total: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    windows = relationship(
        "Window",
        back_populates="work_order",
        order_by="Window.position",
        cascade="all, delete-orphan",
    )
    invoices = relationship("Invoice", back_populates="work_order")
    work_sessions = relationship("WorkSession", back_populates="work_order")

    # Per-instance flags, never persisted. Set by inbound Webflow sync so the
    # resulting commit does not echo the record straight back to Webflow.
    skip_webflow_sync = False
    skip_auto_sync = False

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Window(Base):
    __tablename__ = "windows"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    work_order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0)
    image_url: Mapped[str | None] = mapped_column(Text)
    webflow_image_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    work_order = relationship("WorkOrder", back_populates="windows")
    tools = relationship(
        "Tool",
        back_populates="window",
        order_by="Tool.position",
        cascade="all, delete-orphan",
    )

    @property
    def effective_image_url(self) -> str | None:
        return self.image_url or self.webflow_image_url


class Tool(Base):
    """Priced line item (repair task or part) on a window."""

    __tablename__ = "tools"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    window_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("windows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    window = relationship("Window", back_populates="tools")
