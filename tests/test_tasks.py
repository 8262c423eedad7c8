"""Tests for the Celery tasks, run synchronously with mocked sessions and services."""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import MaxRetriesExceededError, Retry

from app.errors import FreshbooksError, FreshbooksTokenExpiredError, WebflowAPIError
from app.services.freshbooks.client_sync import RecordSyncResult
from app.services.freshbooks.invoice_sync import InvoiceSyncResult
from app.services.webflow.auto_sync import AutoSyncResult
from app.services.webflow.work_order_sync import WebflowSyncResult
from app.tasks import freshbooks as freshbooks_tasks
from app.tasks import webflow as webflow_tasks


@pytest.fixture()
def webflow_session():
    session = MagicMock()
    with patch("app.tasks.webflow.SessionLocal", return_value=session):
        yield session


@pytest.fixture()
def freshbooks_session():
    session = MagicMock()
    with patch("app.tasks.freshbooks.SessionLocal", return_value=session):
        yield session


@pytest.fixture()
def webflow_dead_letter():
    with patch("app.tasks.webflow.write_dead_letter") as mocked:
        yield mocked


@pytest.fixture()
def freshbooks_dead_letter():
    with patch("app.tasks.freshbooks.write_dead_letter") as mocked:
        yield mocked


class TestAutoSyncTask:
    def test_missing_work_order(self, webflow_session):
        webflow_session.get.return_value = None
        work_order_id = str(uuid.uuid4())

        result = webflow_tasks.auto_sync_work_order.run(work_order_id)

        assert result == {"success": False, "reason": "not_found", "work_order_id": work_order_id}
        webflow_session.close.assert_called_once()

    def test_runs_auto_sync(self, webflow_session):
        work_order = MagicMock(is_deleted=False)
        webflow_session.get.return_value = work_order
        outcome = AutoSyncResult(success=True, action="created", webflow_item_id="wf-9")

        with patch("app.services.webflow.auto_sync.auto_sync_work_order", return_value=outcome) as run:
            result = webflow_tasks.auto_sync_work_order.run(str(uuid.uuid4()))

        run.assert_called_once_with(webflow_session, work_order)
        assert result["success"] is True
        assert result["action"] == "created"
        assert result["webflow_item_id"] == "wf-9"

    def test_api_error_retries(self, webflow_session):
        webflow_session.get.return_value = MagicMock(is_deleted=False)
        error = WebflowAPIError("Webflow API error: 503", status_code=503)

        with (
            patch("app.services.webflow.auto_sync.auto_sync_work_order", side_effect=error),
            patch.object(webflow_tasks.auto_sync_work_order, "retry", side_effect=Retry()) as retry,
        ):
            with pytest.raises(Retry):
                webflow_tasks.auto_sync_work_order.run(str(uuid.uuid4()))

        retry.assert_called_once_with(exc=error, countdown=30)
        webflow_session.rollback.assert_called_once()


class TestSyncWebflowItemTask:
    def test_success(self, webflow_session, webflow_dead_letter):
        with patch("app.services.webflow.webhooks.process_webflow_item", return_value={"success": True}):
            result = webflow_tasks.sync_webflow_item.run({"id": "wf-1"}, trace_id="t-1")

        assert result == {"success": True}
        webflow_dead_letter.assert_not_called()

    def test_failed_outcome_is_dead_lettered(self, webflow_session, webflow_dead_letter):
        outcome = {"success": False, "error": "Missing item id"}
        with patch("app.services.webflow.webhooks.process_webflow_item", return_value=outcome):
            webflow_tasks.sync_webflow_item.run({"id": "wf-1"}, trace_id="t-1")

        webflow_dead_letter.assert_called_once_with(
            channel="webflow",
            raw_payload={"id": "wf-1"},
            error="Missing item id",
            trace_id="t-1",
            message_id="wf-1",
            attempts=1,
        )

    def test_exception_retries(self, webflow_session, webflow_dead_letter):
        error = RuntimeError("database unavailable")
        with (
            patch("app.services.webflow.webhooks.process_webflow_item", side_effect=error),
            patch.object(webflow_tasks.sync_webflow_item, "retry", side_effect=Retry()) as retry,
        ):
            with pytest.raises(Retry):
                webflow_tasks.sync_webflow_item.run({"id": "wf-1"})

        retry.assert_called_once_with(exc=error, countdown=60)
        webflow_dead_letter.assert_not_called()

    def test_exhausted_retries_are_dead_lettered(self, webflow_session, webflow_dead_letter):
        error = RuntimeError("database unavailable")
        with (
            patch("app.services.webflow.webhooks.process_webflow_item", side_effect=error),
            patch.object(webflow_tasks.sync_webflow_item, "retry", side_effect=MaxRetriesExceededError()),
        ):
            assert webflow_tasks.sync_webflow_item.run({"id": "wf-1"}, trace_id="t-2") is None

        kwargs = webflow_dead_letter.call_args.kwargs
        assert kwargs["channel"] == "webflow"
        assert kwargs["error"] is error
        assert kwargs["trace_id"] == "t-2"


class TestImportWebflowCollectionTask:
    def test_records_stats(self, webflow_session):
        service = MagicMock()
        service.import_collection.return_value = WebflowSyncResult(synced=4, skipped=1)

        with (
            patch("app.services.webflow.work_order_sync.webflow_work_order_sync", return_value=service),
            patch("app.services.sync_stats.record_sync_result") as record,
        ):
            result = webflow_tasks.import_webflow_collection.run()

        assert result["synced"] == 4
        assert result["skipped"] == 1
        record.assert_called_once_with("webflow", service.import_collection.return_value)
        service.close.assert_called_once()


class TestSyncFreshbooksInvoicesTask:
    def test_single_invoice(self, freshbooks_session):
        service = MagicMock()
        service.sync_invoice.return_value = InvoiceSyncResult(updated=1)

        with (
            patch("app.services.freshbooks.invoice_sync.freshbooks_invoice_sync", return_value=service),
            patch("app.services.sync_stats.record_sync_result") as record,
        ):
            result = freshbooks_tasks.sync_freshbooks_invoices.run("9001")

        service.sync_invoice.assert_called_once_with("9001")
        service.sync_all.assert_not_called()
        assert result["updated"] == 1
        assert result["total_synced"] == 1
        record.assert_called_once_with("freshbooks", service.sync_invoice.return_value, mode="single")

    def test_full_sync(self, freshbooks_session):
        service = MagicMock()
        service.sync_all.return_value = InvoiceSyncResult(created=2, errors=[{"invoice_id": "3", "error": "bad"}])

        with (
            patch("app.services.freshbooks.invoice_sync.freshbooks_invoice_sync", return_value=service),
            patch("app.services.sync_stats.record_sync_result") as record,
        ):
            result = freshbooks_tasks.sync_freshbooks_invoices.run()

        assert result["created"] == 2
        assert result["errors"] == [{"invoice_id": "3", "error": "bad"}]
        assert record.call_args.kwargs["mode"] == "full"

    def test_expired_token_is_not_retried(self, freshbooks_session):
        service = MagicMock()
        service.sync_all.side_effect = FreshbooksTokenExpiredError("expired", reauth_url="https://auth.test")

        with (
            patch("app.services.freshbooks.invoice_sync.freshbooks_invoice_sync", return_value=service),
            patch.object(freshbooks_tasks.sync_freshbooks_invoices, "retry") as retry,
        ):
            with pytest.raises(FreshbooksTokenExpiredError):
                freshbooks_tasks.sync_freshbooks_invoices.run()

        retry.assert_not_called()
        service.close.assert_called_once()

    def test_api_error_retries(self, freshbooks_session):
        service = MagicMock()
        error = FreshbooksError("FreshBooks API error: 500 - boom", status_code=500)
        service.sync_all.side_effect = error

        with (
            patch("app.services.freshbooks.invoice_sync.freshbooks_invoice_sync", return_value=service),
            patch.object(freshbooks_tasks.sync_freshbooks_invoices, "retry", side_effect=Retry()) as retry,
        ):
            with pytest.raises(Retry):
                freshbooks_tasks.sync_freshbooks_invoices.run()

        retry.assert_called_once_with(exc=error, countdown=60)


class TestSyncFreshbooksClientsTask:
    def test_single_client(self, freshbooks_session):
        service = MagicMock()
        service.sync_client.return_value = RecordSyncResult(created=1)

        with (
            patch("app.services.freshbooks.client_sync.freshbooks_client_sync", return_value=service),
            patch("app.services.sync_stats.record_sync_result") as record,
        ):
            result = freshbooks_tasks.sync_freshbooks_clients.run("501")

        service.sync_client.assert_called_once_with("501")
        service.sync_all.assert_not_called()
        assert result["created"] == 1
        record.assert_called_once_with("freshbooks", service.sync_client.return_value, mode="clients_single")
        freshbooks_session.close.assert_called_once()

    def test_api_error_retries(self, freshbooks_session):
        service = MagicMock()
        error = FreshbooksError("FreshBooks API error: 502 - gateway", status_code=502)
        service.sync_all.side_effect = error

        with (
            patch("app.services.freshbooks.client_sync.freshbooks_client_sync", return_value=service),
            patch.object(freshbooks_tasks.sync_freshbooks_clients, "retry", side_effect=Retry()) as retry,
        ):
            with pytest.raises(Retry):
                freshbooks_tasks.sync_freshbooks_clients.run()

        retry.assert_called_once_with(exc=error, countdown=60)
        freshbooks_session.rollback.assert_called_once()
        service.close.assert_called_once()


class TestSyncFreshbooksPaymentsTask:
    def test_full_sync(self, freshbooks_session):
        service = MagicMock()
        service.sync_all.return_value = RecordSyncResult(updated=3, errors=[{"payment_id": 9, "error": "bad"}])

        with (
            patch("app.services.freshbooks.payment_sync.freshbooks_payment_sync", return_value=service),
            patch("app.services.sync_stats.record_sync_result") as record,
        ):
            result = freshbooks_tasks.sync_freshbooks_payments.run()

        assert result["updated"] == 3
        assert result["total_synced"] == 3
        assert result["errors"] == [{"payment_id": 9, "error": "bad"}]
        assert record.call_args.kwargs["mode"] == "payments_full"

    def test_single_payment(self, freshbooks_session):
        service = MagicMock()
        service.sync_payment.return_value = RecordSyncResult(created=1)

        with (
            patch("app.services.freshbooks.payment_sync.freshbooks_payment_sync", return_value=service),
            patch("app.services.sync_stats.record_sync_result") as record,
        ):
            freshbooks_tasks.sync_freshbooks_payments.run("801")

        service.sync_payment.assert_called_once_with("801")
        assert record.call_args.kwargs["mode"] == "payments_single"

    def test_expired_token_is_not_retried(self, freshbooks_session):
        service = MagicMock()
        service.sync_all.side_effect = FreshbooksTokenExpiredError("expired", reauth_url="https://auth.test")

        with (
            patch("app.services.freshbooks.payment_sync.freshbooks_payment_sync", return_value=service),
            patch.object(freshbooks_tasks.sync_freshbooks_payments, "retry") as retry,
        ):
            with pytest.raises(FreshbooksTokenExpiredError):
                freshbooks_tasks.sync_freshbooks_payments.run()

        retry.assert_not_called()
        service.close.assert_called_once()
        freshbooks_session.close.assert_called_once()


class TestProcessFreshbooksEventTask:
    def test_processed(self, freshbooks_session, freshbooks_dead_letter):
        with patch("app.services.freshbooks.webhooks.process_event", return_value="payment_processed") as process:
            result = freshbooks_tasks.process_freshbooks_event.run("payment.create", "701", trace_id="t-1")

        process.assert_called_once_with(freshbooks_session, "payment.create", "701")
        assert result == {"event": "payment.create", "object_id": "701", "outcome": "payment_processed"}
        freshbooks_dead_letter.assert_not_called()

    def test_failed_outcome_is_dead_lettered(self, freshbooks_session, freshbooks_dead_letter):
        with patch("app.services.freshbooks.webhooks.process_event", return_value="failed"):
            freshbooks_tasks.process_freshbooks_event.run("invoice.updated", "9001", trace_id="t-3")

        kwargs = freshbooks_dead_letter.call_args.kwargs
        assert kwargs["channel"] == "freshbooks"
        assert kwargs["raw_payload"] == {"name": "invoice.updated", "object_id": "9001"}
        assert kwargs["message_id"] == "9001"
        assert kwargs["event_name"] == "invoice.updated"
        assert kwargs["attempts"] == 1

    def test_exhausted_retries_are_dead_lettered(self, freshbooks_session, freshbooks_dead_letter):
        error = RuntimeError("lost connection")
        with (
            patch("app.services.freshbooks.webhooks.process_event", side_effect=error),
            patch.object(freshbooks_tasks.process_freshbooks_event, "retry", side_effect=MaxRetriesExceededError()),
        ):
            assert freshbooks_tasks.process_freshbooks_event.run("payment.create", "701") is None

        assert freshbooks_dead_letter.call_args.kwargs["error"] is error
        freshbooks_session.rollback.assert_called_once()
