"""HTTP client for the Webflow CMS Data API (v2)."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any

import httpx

from app.config import settings
from app.errors import WebflowAPIError

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    400: "Bad Request - Invalid parameters",
    401: "Unauthorized - Check your API token",
    403: "Forbidden - Insufficient permissions",
    404: "Not Found - Resource not found",
    429: "Rate Limited - Too many requests",
}


class RateLimiter:
    """Sliding one-minute window; blocks when the window is full."""

    WINDOW_SECONDS = 60.0

    def __init__(self, max_requests: int, clock=time.monotonic, sleep=time.sleep):
        self.max_requests = max_requests
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            while self._timestamps and now - self._timestamps[0] >= self.WINDOW_SECONDS:
                self._timestamps.popleft()
            if len(self._timestamps) >= self.max_requests:
                wait = self.WINDOW_SECONDS - (now - self._timestamps[0])
                if wait > 0:
                    logger.info("webflow_rate_limit_wait seconds=%.2f", wait)
                    self._sleep(wait)
                self._timestamps.popleft()
                now = self._clock()
            self._timestamps.append(now)


class WebflowClient:
    """
    Client for one Webflow site and its WRS collection.

    Features:
    - Bearer token auth with the v2 ``accept-version`` header
    - Client-side rate limiting (60 requests per minute by default)
    - Status code to WebflowAPIError mapping
    """

    PAGE_SIZE = 100

    def __init__(
        self,
        token: str,
        site_id: str | None,
        collection_id: str,
        base_url: str = "https://api.webflow.com/v2",
        timeout: int = 30,
        rate_limit_per_minute: int = 60,
        transport: httpx.BaseTransport | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.site_id = site_id
        self.collection_id = collection_id
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._rate_limiter = rate_limiter or RateLimiter(rate_limit_per_minute)

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "accept-version": "2.0.0",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    def close(self):
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _handle_response(self, response: httpx.Response) -> dict | None:
        if response.status_code < 400:
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise WebflowAPIError(
                    f"Invalid JSON response: {exc}",
                    status_code=response.status_code,
                    response_body=response.text,
                ) from exc

        body = response.text
        status_code = response.status_code
        message = _STATUS_MESSAGES.get(status_code)
        if message is None:
            message = "Server Error - Webflow API issue" if status_code >= 500 else f"HTTP {status_code} - {body}"
        logger.warning("webflow_api_error status=%s body=%s", status_code, body[:500])
        raise WebflowAPIError(message, status_code=status_code, response_body=body)

    def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json_data: dict | None = None,
    ) -> dict | None:
        self._rate_limiter.acquire()
        try:
            response = self._get_client().request(method, path, params=params, json=json_data)
        except httpx.HTTPError as exc:
            raise WebflowAPIError(f"Network error: {exc}") from exc
        return self._handle_response(response)

    def _items_path(self, item_id: str | None = None) -> str:
        path = f"/sites/{self.site_id}/collections/{self.collection_id}/items"
        return f"{path}/{item_id}" if item_id else path

    # ============ Collection Items ============

    def list_items(self, **params: Any) -> dict:
        result = self._request("GET", f"{self._items_path()}/live", params=params or None)
        return result or {}

    def list_all_items(self) -> list[dict]:
        """Walk offset pagination until every live item has been fetched."""
        items: list[dict] = []
        offset = 0
        while True:
            page = self.list_items(limit=self.PAGE_SIZE, offset=offset)
            batch = page.get("items") or []
            items.extend(batch)
            total = (page.get("pagination") or {}).get("total")
            offset += len(batch)
            if not batch or (total is not None and offset >= total):
                break
        return items

    def get_item(self, item_id: str) -> dict:
        return self._request("GET", self._items_path(item_id)) or {}

    def create_item(self, data: dict) -> dict:
        return self._request("POST", self._items_path(), json_data=data) or {}

    def update_item(self, item_id: str, data: dict) -> dict:
        return self._request("PATCH", self._items_path(item_id), json_data=data) or {}

    def delete_item(self, item_id: str) -> None:
        self._request("DELETE", self._items_path(item_id))

    # ============ Publishing ============

    def publish_items(self, item_ids: list[str]) -> dict:
        return (
            self._request(
                "POST",
                f"/collections/{self.collection_id}/items/publish",
                json_data={"itemIds": item_ids},
            )
            or {}
        )

    def unpublish_items(self, item_ids: list[str]) -> None:
        self._request(
            "DELETE",
            f"/collections/{self.collection_id}/items/live",
            json_data={"items": [{"id": item_id} for item_id in item_ids]},
        )


def webflow_client() -> WebflowClient:
    """Build a client from settings; raises when Webflow is not configured."""
    if not settings.webflow_token or not settings.webflow_wrs_collection_id:
        raise WebflowAPIError("Webflow is not configured (WEBFLOW_TOKEN / WEBFLOW_WRS_COLLECTION_ID)")
    return WebflowClient(
        token=settings.webflow_token,
        site_id=settings.webflow_site_id,
        collection_id=settings.webflow_wrs_collection_id,
        base_url=settings.webflow_api_base_url,
        timeout=settings.webflow_timeout_seconds,
        rate_limit_per_minute=settings.webflow_rate_limit_per_minute,
    )
