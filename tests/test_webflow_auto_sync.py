"""Tests for pushing local work orders to Webflow as drafts."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from app.errors import WebflowAPIError
from app.services.common import utcnow
from app.services.webflow.auto_sync import (
    auto_sync_work_order,
    register_auto_sync,
    should_sync_to_webflow,
)

_CONFIGURED = SimpleNamespace(webflow_wrs_collection_id="col-1")


@pytest.fixture()
def webflow():
    client = MagicMock()
    client.create_item.return_value = {"id": "wf-new"}
    return client


class TestShouldSync:
    def test_requires_collection(self, work_order):
        with patch("app.services.webflow.auto_sync.settings", SimpleNamespace(webflow_wrs_collection_id=None)):
            assert should_sync_to_webflow(work_order) is False
        with patch("app.services.webflow.auto_sync.settings", _CONFIGURED):
            assert should_sync_to_webflow(work_order) is True

    def test_skip_flag_and_deleted_records(self, work_order):
        with patch("app.services.webflow.auto_sync.settings", _CONFIGURED):
            work_order.skip_webflow_sync = True
            assert should_sync_to_webflow(work_order) is False
            work_order.skip_webflow_sync = False
            work_order.deleted_at = utcnow()
            assert should_sync_to_webflow(work_order) is False


class TestAutoSyncWorkOrder:
    def test_creates_draft_item(self, db_session, work_order, webflow):
        result = auto_sync_work_order(db_session, work_order, client=webflow)

        assert result.success is True
        assert result.action == "created"
        assert result.webflow_item_id == "wf-new"
        assert work_order.webflow_item_id == "wf-new"
        payload = webflow.create_item.call_args.args[0]
        assert payload["isDraft"] is True
        assert payload["fieldData"]["name"] == work_order.name
        webflow.close.assert_not_called()

    def test_updates_existing_draft(self, db_session, work_order_factory, webflow):
        work_order = work_order_factory(webflow_item_id="wf-7", is_draft=True)
        result = auto_sync_work_order(db_session, work_order, client=webflow)

        assert result.action == "updated"
        webflow.update_item.assert_called_once()
        assert webflow.update_item.call_args.args[0] == "wf-7"
        webflow.create_item.assert_not_called()

    def test_published_item_is_left_alone(self, db_session, work_order_factory, webflow):
        work_order = work_order_factory(webflow_item_id="wf-8", is_draft=False)
        result = auto_sync_work_order(db_session, work_order, client=webflow)

        assert result.success is False
        assert result.reason == "not_draft"
        webflow.update_item.assert_not_called()

    def test_deleted_work_order(self, db_session, work_order, webflow):
        work_order.deleted_at = utcnow()
        result = auto_sync_work_order(db_session, work_order, client=webflow)
        assert result.reason == "record_deleted"

    def test_missing_required_fields(self, db_session, work_order_factory, webflow):
        work_order = work_order_factory(address=None)
        result = auto_sync_work_order(db_session, work_order, client=webflow)

        assert result.reason == "invalid_data"
        webflow.create_item.assert_not_called()

    def test_api_error_propagates(self, db_session, work_order, webflow):
        webflow.create_item.side_effect = WebflowAPIError("Rate Limited - Too many requests", status_code=429)
        with pytest.raises(WebflowAPIError):
            auto_sync_work_order(db_session, work_order, client=webflow)
        assert work_order.webflow_item_id is None


class TestSessionHooks:
    def test_commit_enqueues_auto_sync(self, db_session, work_order_factory):
        register_auto_sync(db_session)
        with (
            patch("app.services.webflow.auto_sync.settings", _CONFIGURED),
            patch("app.tasks.webflow.auto_sync_work_order.delay") as delay,
        ):
            work_order = work_order_factory()
        delay.assert_called_once_with(str(work_order.id))

    def test_inbound_sync_records_are_not_echoed(self, db_session, work_order_factory):
        register_auto_sync(db_session)
        with (
            patch("app.services.webflow.auto_sync.settings", _CONFIGURED),
            patch("app.tasks.webflow.auto_sync_work_order.delay") as delay,
        ):
            work_order = work_order_factory()
            delay.reset_mock()
            work_order.skip_auto_sync = True
            work_order.address = "99 Wharf Street"
            db_session.commit()
        delay.assert_not_called()

    def test_rollback_discards_pending(self, db_session, work_order):
        register_auto_sync(db_session)
        with (
            patch("app.services.webflow.auto_sync.settings", _CONFIGURED),
            patch("app.tasks.webflow.auto_sync_work_order.delay") as delay,
        ):
            work_order.address = "1 Other Road"
            db_session.flush()
            db_session.rollback()
            db_session.commit()
        delay.assert_not_called()

    def test_registration_is_idempotent(self, db_session, work_order_factory):
        register_auto_sync(db_session)
        register_auto_sync(db_session)
        with (
            patch("app.services.webflow.auto_sync.settings", _CONFIGURED),
            patch("app.tasks.webflow.auto_sync_work_order.delay") as delay,
        ):
            work_order_factory()
        assert delay.call_count == 1
