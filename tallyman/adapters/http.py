"""
HTTP Record Client -- RecordClient over the record service's REST API.

Endpoints (relative to ``{API_BASE_URL}/api``):

    GET    /skus?productId=<id>&limit=<n>    →  list_skus_by_product()
    PUT    /skus/<id>                        →  update_sku()
    GET    /products/<id>                    →  get_product()
    PUT    /products/<id>                    →  update_product()
    POST   /products                         →  create_product()
    DELETE /products/<id>                    →  archive_product()

Successful responses come wrapped in a ``{"data": ...}`` envelope, sometimes
twice; they are unwrapped before being returned.

Settings:
    TALLYMAN = {
        "API_BASE_URL": "https://records.example.com",
        "API_TOKEN": "...",          # optional bearer token
        "REQUEST_TIMEOUT": 10.0,
    }
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx
from django.core.exceptions import ImproperlyConfigured

from tallyman.conf import get_setting
from tallyman.exceptions import TallyError

logger = logging.getLogger(__name__)


def extract_data(payload: Any) -> Any:
    """Unwrap the success envelope (``{"data": {"data": ...}}`` or ``{"data": ...}``)."""
    if isinstance(payload, dict) and "data" in payload:
        inner = payload["data"]
        if isinstance(inner, dict) and "data" in inner:
            return inner["data"]
        return inner
    return payload


def _extract_list(payload: Any, key: str) -> Any:
    """Find the record list in a (possibly paginated) payload."""
    current = payload
    for _ in range(3):
        if isinstance(current, list):
            return current
        if not isinstance(current, dict):
            break
        if isinstance(current.get(key), list):
            return current[key]
        if "data" not in current:
            break
        current = current["data"]
    return current


def _extract_record(payload: Any, key: str) -> Any:
    data = extract_data(payload)
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def _encode(fields: dict[str, Any]) -> dict[str, Any]:
    """Decimals go over the wire as JSON numbers."""
    encoded = {}
    for name, value in fields.items():
        if isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        encoded[name] = value
    return encoded


class HttpRecordClient:
    """
    RecordClient implementation backed by httpx.

    Usage:
        with HttpRecordClient("https://records.example.com") as client:
            skus = client.list_skus_by_product("42", limit=1000)

    An httpx.Client may be injected (tests, shared pools); the adapter only
    closes clients it created itself.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        if base_url is None:
            base_url = get_setting("API_BASE_URL")
        normalized = (base_url or "").strip().rstrip("/")
        if not normalized:
            raise ImproperlyConfigured(
                "TALLYMAN['API_BASE_URL'] must be configured to use HttpRecordClient."
            )

        self.base_url = f"{normalized}/api"

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = token if token is not None else get_setting("API_TOKEN")
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                headers=headers,
                timeout=timeout if timeout is not None else get_setting("REQUEST_TIMEOUT"),
            )
            self._owns_client = True
        else:
            client.headers.update(headers)
            self._client = client
            self._owns_client = False

    # ── lifecycle ──

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpRecordClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── transport ──

    def _url(self, path: str) -> str:
        if self._owns_client:
            return path
        return f"{self.base_url}{path}"

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, self._url(path), **kwargs)
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TallyError(
                "RECORD_CLIENT_UNAVAILABLE", method=method, path=path, reason=str(e)
            ) from e
        except httpx.RequestError as e:
            # Redirect loops, undecodable bodies: the service answered, badly.
            logger.error(f"{method} {path} returned an unusable response: {e}")
            raise TallyError(
                "INVALID_RESPONSE", method=method, path=path, reason=str(e)
            ) from e

        if response.is_error:
            message = self._error_message(response)
            code = "RECORD_NOT_FOUND" if response.status_code == 404 else "RECORD_REJECTED"
            raise TallyError(
                code,
                method=method,
                path=path,
                status=response.status_code,
                message=message,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise TallyError(
                "INVALID_RESPONSE", method=method, path=path, status=response.status_code
            ) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    # ── RecordClient ──

    def list_skus_by_product(self, product_id: str, limit: int) -> list[dict]:
        payload = self._request(
            "GET", "/skus", params={"productId": product_id, "limit": limit}
        )
        records = _extract_list(payload, "skus")
        if records is None:
            return []
        if not isinstance(records, list):
            raise TallyError(
                "INVALID_RESPONSE", path="/skus", product_id=product_id, expected="list"
            )
        return records

    def update_sku(self, sku_id: str, fields: dict[str, Any]) -> dict:
        payload = self._request("PUT", f"/skus/{sku_id}", json=_encode(fields))
        return _extract_record(payload, "sku") or {}

    def get_product(self, product_id: str) -> dict:
        payload = self._request("GET", f"/products/{product_id}")
        record = _extract_record(payload, "product")
        if not isinstance(record, dict):
            raise TallyError(
                "INVALID_RESPONSE", path=f"/products/{product_id}", expected="object"
            )
        return record

    def update_product(self, product_id: str, fields: dict[str, Any]) -> dict:
        payload = self._request("PUT", f"/products/{product_id}", json=_encode(fields))
        return _extract_record(payload, "product") or {}

    def create_product(self, fields: dict[str, Any]) -> dict:
        payload = self._request("POST", "/products", json=_encode(fields))
        return _extract_record(payload, "product") or {}

    def archive_product(self, product_id: str) -> None:
        self._request("DELETE", f"/products/{product_id}")
