import uuid
from datetime import UTC, datetime, timedelta
from datetime import date as date_type
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.db import Base


class FreshbooksClient(Base):
    __tablename__ = "freshbooks_clients"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    freshbooks_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name: Mapped[str | None] = mapped_column(String(120))
    organization: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(40))
    raw_data: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class FreshbooksInvoice(Base):
    """Local mirror of a FreshBooks invoice, keyed by its FreshBooks id."""

    __tablename__ = "freshbooks_invoices"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    freshbooks_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    freshbooks_client_id: Mapped[str | None] = mapped_column(String(64), index=True)
    invoice_number: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str | None] = mapped_column(String(40))
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    amount_outstanding: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    date: Mapped[date_type | None] = mapped_column(Date)
    due_date: Mapped[date_type | None] = mapped_column(Date)
    currency_code: Mapped[str | None] = mapped_column(String(3))
    notes: Mapped[str | None] = mapped_column(Text)
    pdf_url: Mapped[str | None] = mapped_column(Text)
    raw_data: Mapped[dict | None] = mapped_column(JSON)
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("invoices.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    invoice = relationship("Invoice", back_populates="freshbooks_invoices")


class FreshbooksPayment(Base):
    __tablename__ = "freshbooks_payments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    freshbooks_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    # FreshBooks invoice id (remote), not a local foreign key
    freshbooks_invoice_id: Mapped[str | None] = mapped_column(String(64), index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    date: Mapped[date_type | None] = mapped_column(Date)
    payment_method: Mapped[str | None] = mapped_column(String(60))
    currency_code: Mapped[str | None] = mapped_column(String(3))
    notes: Mapped[str | None] = mapped_column(Text)
    raw_data: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class FreshbooksToken(Base):
    __tablename__ = "freshbooks_tokens"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    business_id: Mapped[str | None] = mapped_column(String(64), unique=True)
    user_freshbooks_id: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    def _expires_at(self) -> datetime | None:
        expires_at = self.token_expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at

    def expired(self) -> bool:
        expires_at = self._expires_at()
        return expires_at is not None and expires_at <= datetime.now(UTC)

    def expires_soon(self, buffer_seconds: int = 300) -> bool:
        expires_at = self._expires_at()
        if expires_at is None:
            return False
        return expires_at <= datetime.now(UTC) + timedelta(seconds=buffer_seconds)

    @classmethod
    def current(cls, db: Session) -> "FreshbooksToken | None":
        return db.query(cls).order_by(cls.created_at.desc()).first()
