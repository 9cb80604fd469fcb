# Overview: HTTP client for the vendor (Zinc) fulfillment and balance APIs.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import httpx
from flask import current_app

from ..errors import FulfillmentError


class ZincApiError(FulfillmentError):
    """
    Vendor rejected or never answered a request.

    payload holds the vendor's error body verbatim (or a transport_error
    stand-in when no response arrived).
    """

    def __init__(self, message: str, *, status_code: int | None = None, payload: dict | None = None):
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


class BalanceUnavailableError(FulfillmentError):
    """Funding pool balance could not be determined."""


@dataclass
class ZincSubmission:
    request_id: str
    status_code: int
    payload: dict


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    if isinstance(body, dict):
        return body
    return {"data": body}


class ZincClient:
    """
    Thin wrapper over the vendor REST API.

    Every call is one bounded HTTP round-trip; there is no internal retry
    (the vendor deduplicates on idempotency_key, the pipeline re-drives).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        *,
        timeout: float = 20.0,
        balance_path: str = "/addax/balance",
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.balance_path = balance_path
        self.transport = transport

    @classmethod
    def from_app(cls) -> "ZincClient":
        cfg = current_app.config
        return cls(
            api_key=cfg.get("ZINC_API_KEY", ""),
            base_url=cfg.get("ZINC_API_BASE_URL", "https://api.zinc.io/v1"),
            timeout=float(cfg.get("ZINC_TIMEOUT_SECONDS", 20.0)),
            balance_path=cfg.get("ZINC_BALANCE_PATH", "/addax/balance"),
            transport=cfg.get("ZINC_HTTP_TRANSPORT"),
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            auth=(self.api_key, ""),
            timeout=self.timeout,
            transport=self.transport,
            headers={"Content-Type": "application/json"},
        )

    def submit_order(self, body: dict) -> ZincSubmission:
        """
        POST an order request.

        Raises:
            ZincApiError: non-2xx, error-typed body, missing request_id,
                or transport failure/timeout
        """
        try:
            with self._client() as client:
                response = client.post("/orders", json=body)
        except httpx.HTTPError as exc:
            raise ZincApiError(
                f"Vendor API unreachable: {exc}",
                payload={"code": "transport_error", "message": str(exc)},
            )

        payload = _json_body(response)

        if response.status_code >= 400:
            raise ZincApiError(
                f"Vendor API error ({response.status_code}): {payload.get('message', 'unknown error')}",
                status_code=response.status_code,
                payload=payload,
            )

        if payload.get("_type") == "error":
            raise ZincApiError(
                f"Vendor API error ({payload.get('code', 'error')}): {payload.get('message', 'unknown error')}",
                status_code=response.status_code,
                payload=payload,
            )

        request_id = payload.get("request_id")
        if not request_id:
            raise ZincApiError(
                "Vendor API response missing request_id",
                status_code=response.status_code,
                payload=payload,
            )

        return ZincSubmission(request_id=str(request_id), status_code=response.status_code, payload=payload)

    def get_balance_cents(self) -> int:
        """
        Read the prepaid account balance ({"balance": <dollars>}).

        Raises:
            BalanceUnavailableError: on any transport, HTTP or parse failure
        """
        try:
            with self._client() as client:
                response = client.get(self.balance_path)
        except httpx.HTTPError as exc:
            raise BalanceUnavailableError(f"Balance lookup failed: {exc}")

        if response.status_code >= 400:
            raise BalanceUnavailableError(f"Balance lookup failed with HTTP {response.status_code}")

        payload = _json_body(response)
        if payload.get("balance") is None:
            raise BalanceUnavailableError("Balance lookup returned no balance")

        try:
            dollars = Decimal(str(payload["balance"]))
        except InvalidOperation:
            raise BalanceUnavailableError(f"Balance is not numeric: {payload['balance']!r}")
        # NaN and Infinity parse as Decimal but have no cent value
        if not dollars.is_finite():
            raise BalanceUnavailableError(f"Balance is not a finite number: {payload['balance']!r}")

        return int((dollars * 100).quantize(Decimal("1")))
