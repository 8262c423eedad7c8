"""HTTP client for the FreshBooks accounting, payments and events APIs."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import FreshbooksError, FreshbooksTokenExpiredError
from app.models.freshbooks import FreshbooksToken

logger = logging.getLogger(__name__)

ONLINE_PAYMENT_GATEWAYS = ("stripe", "paypal", "fbpay")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json() if response.content else None
    except ValueError:
        data = None
    if isinstance(data, dict):
        nested = (data.get("response") or {}).get("errors")
        if nested:
            return str(nested)
        return str(data.get("error_description") or data.get("error") or data.get("message") or data)
    return response.text


def _result(data: dict | None, key: str | None = None):
    result = ((data or {}).get("response") or {}).get("result") or {}
    return result.get(key) if key else result


def build_line(line: dict, default_currency: str) -> dict:
    """Convert a line dict (name/qty/cost) to the FreshBooks wire shape."""
    item: dict[str, Any] = {
        "name": line.get("name"),
        "description": line.get("description"),
        "qty": line.get("quantity") or line.get("qty") or 1,
        "unit_cost": {
            "amount": str(line.get("cost") if line.get("cost") is not None else line.get("unit_cost")),
            "code": line.get("currency") or default_currency,
        },
        "type": line.get("type", 0),
    }
    if line.get("tax_included") in (True, "yes"):
        item["tax_amount1"] = "0"
        item["tax_amount2"] = "0"
    elif line.get("tax_amount1") is not None:
        item["tax_amount1"] = line["tax_amount1"]
        if line.get("tax_amount2") is not None:
            item["tax_amount2"] = line["tax_amount2"]
    return {key: value for key, value in item.items() if value is not None}


def build_invoice_payload(params: dict) -> dict:
    currency = params.get("currency") or params.get("currency_code") or settings.freshbooks_default_currency
    invoice = {
        "customerid": params.get("client_id") or params.get("customerid"),
        "create_date": params.get("date") or date.today().isoformat(),
        "due_date": params.get("due_date"),
        "currency_code": currency,
        "notes": params.get("notes"),
        "terms": params.get("terms"),
        "tax_included": params.get("tax_included") or "yes",
        "tax_calculation": params.get("tax_calculation") or "item",
        "lines": [build_line(line, currency) for line in params.get("lines") or []],
    }
    invoice = {key: value for key, value in invoice.items() if value is not None}
    if params.get("status"):
        invoice["status"] = params["status"]
    return {"invoice": invoice}


class FreshbooksClient:
    """
    Client for one FreshBooks business account.

    Credentials come from explicit arguments, then the newest stored
    FreshbooksToken, then settings. A 401 triggers one token refresh and a
    retry of the original request.
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        db: Session | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        business_id: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: int | None = None,
    ):
        self.db = db
        token = FreshbooksToken.current(db) if db is not None else None
        self._token_record = token
        self.access_token = access_token or (token.access_token if token else None) or settings.freshbooks_access_token
        self.refresh_token = (
            refresh_token or (token.refresh_token if token else None) or settings.freshbooks_refresh_token
        )
        self.business_id = business_id or (token.business_id if token else None) or settings.freshbooks_business_id
        if not self.access_token:
            raise FreshbooksError("FreshBooks access token not configured")
        if not self.business_id:
            raise FreshbooksError("FreshBooks business ID not configured")
        self.timeout = timeout or settings.freshbooks_timeout_seconds or self.DEFAULT_TIMEOUT
        self._client = http_client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self):
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Api-Version": "alpha",
        }

    # ============ Token handling ============

    def reauthorization_url(self) -> str | None:
        if not settings.freshbooks_client_id or not settings.freshbooks_redirect_uri:
            return None
        query = urlencode(
            {
                "client_id": settings.freshbooks_client_id,
                "response_type": "code",
                "redirect_uri": settings.freshbooks_redirect_uri,
            }
        )
        return f"{settings.freshbooks_auth_base_url}/oauth/authorize?{query}"

    def refresh_access_token(self) -> None:
        if not settings.freshbooks_client_id or not settings.freshbooks_client_secret:
            raise FreshbooksError(
                "FreshBooks OAuth credentials not configured (CLIENT_ID and CLIENT_SECRET required for token refresh)"
            )
        try:
            response = self._get_client().post(
                f"{settings.freshbooks_auth_base_url}/oauth/token",
                json={
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                    "client_id": settings.freshbooks_client_id,
                    "client_secret": settings.freshbooks_client_secret,
                },
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise FreshbooksError(f"Network error: {exc}") from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error("freshbooks_token_refresh_failed status=%s detail=%s", response.status_code, detail)
            if response.status_code in (400, 401):
                raise FreshbooksTokenExpiredError(
                    f"Failed to refresh access token: {response.status_code} - {detail}",
                    reauth_url=self.reauthorization_url(),
                )
            raise FreshbooksError(
                f"Failed to refresh access token: {response.status_code} - {detail}",
                status_code=response.status_code,
                response_body=response.text,
            )

        data = response.json()
        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token") or self.refresh_token
        if self._token_record is not None and self.db is not None:
            self._token_record.access_token = self.access_token
            self._token_record.refresh_token = self.refresh_token
            if data.get("expires_in"):
                self._token_record.token_expires_at = datetime.now(UTC) + timedelta(seconds=int(data["expires_in"]))
            self.db.commit()
        logger.info("freshbooks_token_refreshed business_id=%s", self.business_id)

    def _refresh_if_needed(self) -> None:
        if self.refresh_token and self._token_record is not None and self._token_record.expires_soon():
            self.refresh_access_token()

    # ============ Transport ============

    def _send(self, method: str, url: str, params: dict | None, json_data: dict | None) -> httpx.Response:
        try:
            return self._get_client().request(method, url, params=params, json=json_data, headers=self._headers())
        except httpx.HTTPError as exc:
            raise FreshbooksError(f"Network error: {exc}") from exc

    def _request(
        self,
        method: str,
        url: str,
        params: dict | None = None,
        json_data: dict | None = None,
    ) -> dict | None:
        self._refresh_if_needed()
        logger.debug("freshbooks_request method=%s url=%s", method, url)
        response = self._send(method, url, params, json_data)

        if response.status_code == 401:
            if not self.refresh_token:
                raise FreshbooksError(
                    "FreshBooks API error: Unauthorized (401). Token may be expired and no refresh token available."
                    f" - {_error_detail(response)}",
                    status_code=401,
                    response_body=response.text,
                )
            logger.info("freshbooks_unauthorized_refreshing url=%s", url)
            self.refresh_access_token()
            response = self._send(method, url, params, json_data)
            if response.status_code >= 400:
                raise FreshbooksError(
                    f"FreshBooks API error after token refresh: {response.status_code} - {_error_detail(response)}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning("freshbooks_api_error status=%s url=%s detail=%s", response.status_code, url, detail)
            raise FreshbooksError(
                f"FreshBooks API error: {response.status_code} - {detail}",
                status_code=response.status_code,
                response_body=response.text,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _accounting_url(self, endpoint: str) -> str:
        return f"{settings.freshbooks_api_base_url}/accounting/account/{self.business_id}/{endpoint}"

    def _payments_url(self, endpoint: str) -> str:
        return f"{settings.freshbooks_api_base_url}/payments/account/{self.business_id}/{endpoint}"

    def _events_url(self, endpoint: str) -> str:
        return f"{settings.freshbooks_api_base_url}/events/account/{self.business_id}/{endpoint}"

    @staticmethod
    def _page(data: dict | None, key: str, page: int) -> dict:
        result = _result(data)
        return {
            key: result.get(key) or [],
            "page": result.get("page") or page,
            "pages": result.get("pages") or 1,
            "total": result.get("total") or 0,
        }

    # ============ Invoices ============

    def list_invoices(self, page: int = 1, per_page: int = 100, client_id: str | None = None) -> dict:
        params: dict[str, Any] = {"page": page, "per_page": per_page}
        if client_id:
            params["clientid"] = client_id
        data = self._request("GET", self._accounting_url("invoices/invoices"), params=params)
        return self._page(data, "invoices", page)

    def get_invoice(self, invoice_id: str, include_lines: bool = False) -> dict | None:
        params = {"include[]": "lines"} if include_lines else None
        data = self._request("GET", self._accounting_url(f"invoices/invoices/{invoice_id}"), params=params)
        return _result(data, "invoice")

    def create_invoice(self, params: dict) -> dict | None:
        data = self._request("POST", self._accounting_url("invoices/invoices"), json_data=build_invoice_payload(params))
        return _result(data, "invoice")

    def update_invoice(self, invoice_id: str, invoice_fields: dict) -> dict | None:
        """PUT raw invoice fields (lines, status, action_email, ...)."""
        data = self._request(
            "PUT",
            self._accounting_url(f"invoices/invoices/{invoice_id}"),
            json_data={"invoice": invoice_fields},
        )
        return _result(data, "invoice")

    def void_invoice(self, invoice_id: str) -> dict | None:
        return self.update_invoice(invoice_id, {"vis_state": 1})

    def invoice_payment_link(self, invoice_id: str) -> str | None:
        invoice = self.get_invoice(invoice_id)
        if not invoice:
            return None
        return (
            invoice.get("payment_link")
            or invoice.get("payment_url")
            or f"https://my.freshbooks.com/view/{self.business_id}/{invoice.get('id') or invoice.get('invoiceid')}"
        )

    # ============ Payments ============

    def list_payments(
        self,
        page: int = 1,
        per_page: int = 100,
        invoice_id: str | None = None,
        client_id: str | None = None,
    ) -> dict:
        params: dict[str, Any] = {"page": page, "per_page": per_page}
        if invoice_id:
            params["invoiceid"] = invoice_id
        if client_id:
            params["clientid"] = client_id
        data = self._request("GET", self._accounting_url("payments/payments"), params=params)
        return self._page(data, "payments", page)

    def get_payment(self, payment_id: str) -> dict | None:
        data = self._request("GET", self._accounting_url(f"payments/payments/{payment_id}"))
        return _result(data, "payment")

    # ============ Clients ============

    def list_clients(self, page: int = 1, per_page: int = 100) -> dict:
        data = self._request(
            "GET",
            self._accounting_url("users/clients"),
            params={"page": page, "per_page": per_page},
        )
        return self._page(data, "clients", page)

    def get_client(self, client_id: str) -> dict | None:
        data = self._request("GET", self._accounting_url(f"users/clients/{client_id}"))
        return _result(data, "client")

    # ============ Online payments ============

    def enable_online_payment(self, invoice_id: str, gateway_name: str = "stripe") -> dict | None:
        data = self._request(
            "POST",
            self._payments_url(f"invoice/{invoice_id}/payment_options"),
            json_data={"gateway_name": gateway_name, "has_credit_card": True},
        )
        return (data or {}).get("payment_options")

    # ============ Webhook callbacks ============

    def list_callbacks(self) -> list[dict]:
        data = self._request("GET", self._events_url("events/callbacks"))
        return _result(data, "callbacks") or []

    def create_callback(self, event: str, uri: str) -> dict | None:
        data = self._request(
            "POST",
            self._events_url("events/callbacks"),
            json_data={"callback": {"event": event, "uri": uri}},
        )
        return _result(data, "callback")

    def verify_callback(self, callback_id: str, verifier: str) -> dict | None:
        data = self._request(
            "PUT",
            self._events_url(f"events/callbacks/{callback_id}"),
            json_data={"callback": {"verifier": verifier}},
        )
        return _result(data, "callback")

    def resend_verification(self, callback_id: str) -> dict | None:
        data = self._request(
            "PUT",
            self._events_url(f"events/callbacks/{callback_id}"),
            json_data={"callback": {"resend": True}},
        )
        return _result(data, "callback")

    def delete_callback(self, callback_id: str) -> bool:
        self._request("DELETE", self._events_url(f"events/callbacks/{callback_id}"))
        return True
