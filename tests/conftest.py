import os
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.models import (  # noqa: F401
    FreshbooksClient,
    FreshbooksInvoice,
    Invoice,
    Tool,
    Window,
    WorkOrder,
    WorkOrderStatus,
)


def _resolve_test_database_url() -> str | None:
    raw_url = os.getenv("TEST_DATABASE_URL")
    if not raw_url:
        return None
    url = make_url(raw_url)
    if url.drivername.startswith("postgresql") and url.database != "wrs_sync_test":
        url = url.set(database="wrs_sync_test")
    return url.render_as_string(hide_password=False)


@pytest.fixture(scope="session")
def engine():
    database_url = _resolve_test_database_url()
    if database_url:
        engine = create_engine(database_url)
    else:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # pysqlite manages transactions itself, which breaks SAVEPOINT.
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, _connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        autocommit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


def _make_work_order(db_session, windows=None, **overrides):
    """Persist a work order; ``windows`` is a list of (location, [(name, price), ...])."""
    suffix = uuid.uuid4().hex[:8]
    values = {
        "name": f"WRS {suffix}",
        "slug": f"wrs-{suffix}",
        "address": "12 Harbour Road",
        "flat_number": "4B",
        "status": WorkOrderStatus.pending,
        "is_draft": True,
        **overrides,
    }
    work_order = WorkOrder(**values)
    for position, (location, tools) in enumerate(windows or []):
        window = Window(location=location, position=position)
        for tool_position, (name, price) in enumerate(tools):
            window.tools.append(Tool(name=name, price=Decimal(str(price)), position=tool_position))
        work_order.windows.append(window)
    db_session.add(work_order)
    db_session.commit()
    db_session.refresh(work_order)
    return work_order


def _make_invoice(db_session, freshbooks_id=None, status="sent", fb_status=None, **overrides):
    """Persist an invoice with one FreshBooks mirror (skip mirror with freshbooks_id=False)."""
    suffix = uuid.uuid4().hex[:8]
    invoice = Invoice(
        name=overrides.pop("name", f"INV {suffix}"),
        slug=overrides.pop("slug", f"inv-{suffix}"),
        status=status,
        final_status=overrides.pop("final_status", status),
        freshbooks_client_id=overrides.pop("freshbooks_client_id", "501"),
        **overrides,
    )
    db_session.add(invoice)
    if freshbooks_id is not False:
        db_session.add(
            FreshbooksInvoice(
                freshbooks_id=freshbooks_id or str(uuid.uuid4().int)[:8],
                freshbooks_client_id=invoice.freshbooks_client_id,
                status=fb_status or status,
                amount=Decimal("120.00"),
                amount_outstanding=Decimal("120.00"),
                currency_code="GBP",
                invoice=invoice,
            )
        )
    db_session.commit()
    db_session.refresh(invoice)
    return invoice


@pytest.fixture()
def work_order(db_session):
    return _make_work_order(
        db_session,
        windows=[
            ("Kitchen", [("Reseal frame", 40), ("Replace handle", 25)]),
            ("Bedroom", [("Ease sash", 35)]),
        ],
    )


@pytest.fixture()
def invoice(db_session):
    return _make_invoice(db_session, freshbooks_id="9001")


@pytest.fixture()
def work_order_factory(db_session):
    def factory(windows=None, **overrides):
        return _make_work_order(db_session, windows=windows, **overrides)

    return factory


@pytest.fixture()
def invoice_factory(db_session):
    def factory(**overrides):
        return _make_invoice(db_session, **overrides)

    return factory
