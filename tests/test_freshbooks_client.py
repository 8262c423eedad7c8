"""Tests for the FreshBooks API client (httpx MockTransport)."""

import dataclasses
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import httpx
import pytest

from app.config import settings
from app.errors import FreshbooksError, FreshbooksTokenExpiredError
from app.models.freshbooks import FreshbooksToken
from app.services.freshbooks.client import FreshbooksClient, build_invoice_payload, build_line

API = "https://api.test.freshbooks.com"
AUTH = "https://auth.test.freshbooks.com"


def _settings(**overrides):
    values = {
        "freshbooks_api_base_url": API,
        "freshbooks_auth_base_url": AUTH,
        "freshbooks_client_id": "cid",
        "freshbooks_client_secret": "csecret",
        "freshbooks_redirect_uri": "https://wrs.example.com/freshbooks/callback",
        "freshbooks_access_token": None,
        "freshbooks_refresh_token": None,
        "freshbooks_business_id": None,
        **overrides,
    }
    return dataclasses.replace(settings, **values)


@pytest.fixture()
def fb_settings():
    with patch("app.services.freshbooks.client.settings", _settings()) as patched:
        yield patched


def _make_client(handler, db=None, **overrides):
    values = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "business_id": "BIZ",
        "http_client": httpx.Client(transport=httpx.MockTransport(handler)),
        **overrides,
    }
    return FreshbooksClient(db, **values)


def _invoice_response(**invoice):
    return httpx.Response(200, json={"response": {"result": {"invoice": invoice}}})


class TestPayloadBuilders:
    def test_build_line(self):
        line = build_line({"name": "Reseal", "quantity": 2, "cost": 40}, "GBP")
        assert line == {"name": "Reseal", "qty": 2, "unit_cost": {"amount": "40", "code": "GBP"}, "type": 0}

    def test_build_line_tax_included(self):
        line = build_line({"name": "Reseal", "cost": 40, "tax_included": "yes"}, "GBP")
        assert line["tax_amount1"] == "0"
        assert line["tax_amount2"] == "0"

    def test_build_invoice_payload_defaults(self, fb_settings):
        payload = build_invoice_payload({"client_id": "501", "lines": [{"name": "Reseal", "cost": 40}]})
        invoice = payload["invoice"]
        assert invoice["customerid"] == "501"
        assert invoice["currency_code"] == fb_settings.freshbooks_default_currency
        assert invoice["tax_included"] == "yes"
        assert invoice["lines"][0]["unit_cost"]["code"] == fb_settings.freshbooks_default_currency
        assert "status" not in invoice


class TestConstruction:
    def test_requires_access_token(self, fb_settings):
        with pytest.raises(FreshbooksError, match="access token not configured"):
            FreshbooksClient(business_id="BIZ")

    def test_requires_business_id(self, fb_settings):
        with pytest.raises(FreshbooksError, match="business ID not configured"):
            FreshbooksClient(access_token="tok")

    def test_uses_stored_token(self, db_session, fb_settings):
        db_session.add(FreshbooksToken(access_token="stored", refresh_token="stored-r", business_id="BIZ-DB"))
        db_session.commit()
        client = FreshbooksClient(db_session)
        assert client.access_token == "stored"
        assert client.business_id == "BIZ-DB"


class TestInvoices:
    def test_get_invoice_with_lines(self, fb_settings):
        seen = {}

        def handler(request):
            seen["url"] = f"{request.url.scheme}://{request.url.host}{request.url.path}"
            seen["include"] = request.url.params.get("include[]")
            seen["auth"] = request.headers["Authorization"]
            return _invoice_response(id=77, status=2)

        invoice = _make_client(handler).get_invoice("77", include_lines=True)
        assert invoice == {"id": 77, "status": 2}
        assert seen == {
            "url": f"{API}/accounting/account/BIZ/invoices/invoices/77",
            "include": "lines",
            "auth": "Bearer access-1",
        }

    def test_list_invoices_page_shape(self, fb_settings):
        def handler(request):
            assert request.url.params["page"] == "2"
            return httpx.Response(
                200,
                json={"response": {"result": {"invoices": [{"id": 1}], "page": 2, "pages": 3, "total": 201}}},
            )

        listing = _make_client(handler).list_invoices(page=2)
        assert listing == {"invoices": [{"id": 1}], "page": 2, "pages": 3, "total": 201}

    def test_void_invoice_sets_vis_state(self, fb_settings):
        def handler(request):
            assert request.method == "PUT"
            assert json.loads(request.content) == {"invoice": {"vis_state": 1}}
            return _invoice_response(id=77, vis_state=1)

        assert _make_client(handler).void_invoice("77")["vis_state"] == 1

    def test_enable_online_payment(self, fb_settings):
        def handler(request):
            assert request.url.path == "/payments/account/BIZ/invoice/77/payment_options"
            assert json.loads(request.content) == {"gateway_name": "stripe", "has_credit_card": True}
            return httpx.Response(200, json={"payment_options": {"gateway_name": "stripe"}})

        assert _make_client(handler).enable_online_payment("77") == {"gateway_name": "stripe"}

    def test_api_error_includes_nested_detail(self, fb_settings):
        def handler(request):
            return httpx.Response(422, json={"response": {"errors": [{"message": "Invalid lines"}]}})

        with pytest.raises(FreshbooksError) as exc:
            _make_client(handler).update_invoice("77", {"lines": []})
        assert exc.value.status_code == 422
        assert "Invalid lines" in exc.value.message

    def test_network_error_is_wrapped(self, fb_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(FreshbooksError, match="Network error"):
            _make_client(handler).get_invoice("77")


class TestTokenRefresh:
    def test_unauthorized_refreshes_and_retries(self, fb_settings):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path, request.headers.get("Authorization")))
            if request.url.path == "/oauth/token":
                assert json.loads(request.content)["refresh_token"] == "refresh-1"
                return httpx.Response(200, json={"access_token": "access-2", "refresh_token": "refresh-2"})
            if request.headers["Authorization"] == "Bearer access-1":
                return httpx.Response(401, json={"error": "unauthenticated"})
            return _invoice_response(id=77)

        client = _make_client(handler)
        assert client.get_invoice("77") == {"id": 77}
        assert client.access_token == "access-2"
        assert client.refresh_token == "refresh-2"
        assert [path for _, path, _ in calls] == [
            "/accounting/account/BIZ/invoices/invoices/77",
            "/oauth/token",
            "/accounting/account/BIZ/invoices/invoices/77",
        ]

    def test_unauthorized_without_refresh_token(self, fb_settings):
        client = _make_client(lambda request: httpx.Response(401, text="nope"), refresh_token=None)
        with pytest.raises(FreshbooksError) as exc:
            client.get_invoice("77")
        assert exc.value.status_code == 401
        assert "no refresh token available" in exc.value.message

    def test_rejected_refresh_requires_reauthorization(self, fb_settings):
        def handler(request):
            if request.url.path == "/oauth/token":
                return httpx.Response(400, json={"error_description": "invalid_grant"})
            return httpx.Response(401, text="expired")

        with pytest.raises(FreshbooksTokenExpiredError) as exc:
            _make_client(handler).get_invoice("77")
        assert "invalid_grant" in exc.value.message
        assert exc.value.details["reauth_url"].startswith(f"{AUTH}/oauth/authorize?client_id=cid")

    def test_refresh_requires_oauth_credentials(self):
        client = _make_client(lambda request: httpx.Response(401, text="expired"))
        with patch("app.services.freshbooks.client.settings", _settings(freshbooks_client_secret=None)):
            with pytest.raises(FreshbooksError, match="OAuth credentials not configured"):
                client.get_invoice("77")

    def test_expiring_stored_token_is_refreshed_first(self, db_session, fb_settings):
        token = FreshbooksToken(
            access_token="old",
            refresh_token="old-r",
            business_id="BIZ",
            token_expires_at=datetime.now(UTC) + timedelta(seconds=30),
        )
        db_session.add(token)
        db_session.commit()

        def handler(request):
            if request.url.path == "/oauth/token":
                return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
            assert request.headers["Authorization"] == "Bearer fresh"
            return _invoice_response(id=77)

        client = FreshbooksClient(db_session, http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        client.get_invoice("77")

        db_session.refresh(token)
        assert token.access_token == "fresh"
        assert token.refresh_token == "old-r"
        assert token.expired() is False


class TestPaymentsAndClients:
    def test_list_payments_filters(self, fb_settings):
        def handler(request):
            assert request.url.params["invoiceid"] == "77"
            assert "clientid" not in request.url.params
            return httpx.Response(200, json={"response": {"result": {"payments": [{"id": 1}, {"id": 2}]}}})

        listing = _make_client(handler).list_payments(invoice_id="77")
        assert listing == {"payments": [{"id": 1}, {"id": 2}], "page": 1, "pages": 1, "total": 0}

    def test_get_client(self, fb_settings):
        def handler(request):
            assert request.url.path == "/accounting/account/BIZ/users/clients/501"
            return httpx.Response(200, json={"response": {"result": {"client": {"id": 501, "email": "a@b.test"}}}})

        assert _make_client(handler).get_client("501")["email"] == "a@b.test"

    def test_list_clients(self, fb_settings):
        def handler(request):
            return httpx.Response(200, json={"response": {"result": {"clients": [{"id": 501}], "pages": 1}}})

        assert _make_client(handler).list_clients()["clients"] == [{"id": 501}]

    def test_payment_link_prefers_remote_link(self, fb_settings):
        client = _make_client(lambda request: _invoice_response(id=77, payment_link="https://pay.test/77"))
        assert client.invoice_payment_link("77") == "https://pay.test/77"

    def test_payment_link_fallback(self, fb_settings):
        client = _make_client(lambda request: _invoice_response(id=77))
        assert client.invoice_payment_link("77") == "https://my.freshbooks.com/view/BIZ/77"


class TestCallbacks:
    def test_create_callback(self, fb_settings):
        def handler(request):
            assert request.url.path == "/events/account/BIZ/events/callbacks"
            assert json.loads(request.content) == {
                "callback": {"event": "payment.create", "uri": "https://wrs.test/webhooks/freshbooks"}
            }
            return httpx.Response(200, json={"response": {"result": {"callback": {"callbackid": 12}}}})

        callback = _make_client(handler).create_callback("payment.create", "https://wrs.test/webhooks/freshbooks")
        assert callback == {"callbackid": 12}

    def test_list_callbacks_empty(self, fb_settings):
        client = _make_client(lambda request: httpx.Response(200, json={"response": {"result": {}}}))
        assert client.list_callbacks() == []

    def test_verify_and_resend(self, fb_settings):
        bodies = []

        def handler(request):
            assert request.method == "PUT"
            assert request.url.path == "/events/account/BIZ/events/callbacks/12"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"response": {"result": {"callback": {"callbackid": 12}}}})

        client = _make_client(handler)
        client.verify_callback("12", "v-1")
        client.resend_verification("12")
        assert bodies == [{"callback": {"verifier": "v-1"}}, {"callback": {"resend": True}}]

    def test_delete_callback(self, fb_settings):
        def handler(request):
            assert request.method == "DELETE"
            return httpx.Response(204)

        assert _make_client(handler).delete_callback("12") is True
