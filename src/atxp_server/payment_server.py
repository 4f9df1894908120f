"""Client for the ATXP payment server's /charge and /payment-request endpoints."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from pydantic import ValidationError

from .constants import DEFAULT_AUTHORIZATION_SERVER, DEFAULT_TIMEOUT_SECONDS
from .errors import PaymentServerError, PaymentServerTransportError
from .types import Charge, ChargeResponse, PendingPayment

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)


class PaymentServer(Protocol):
    """Anything the payment engine can charge through."""

    async def charge(self, charge: Charge) -> ChargeResponse:
        ...

    async def create_payment_request(self, charge: Charge) -> str:
        ...


@dataclass
class PaymentServerConfig:
    """Configuration for the HTTP payment server client."""

    auth_token: str
    url: str = DEFAULT_AUTHORIZATION_SERVER
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    http_client: Any = None  # Optional httpx.AsyncClient


def _charge_to_payload(charge: Charge) -> Dict[str, Any]:
    return charge.model_dump(by_alias=True, mode="json")


def _error_fields(response: httpx.Response) -> tuple[str, str, Any]:
    try:
        body = response.json()
    except ValueError:
        return "UNKNOWN_ERROR", response.text or "Unknown error", None
    if not isinstance(body, dict):
        return "UNKNOWN_ERROR", "Unknown error", None

    error = body.get("error")
    if isinstance(error, dict):
        return (
            str(error.get("code") or "UNKNOWN_ERROR"),
            str(error.get("message") or body.get("message") or "Unknown error"),
            error.get("details"),
        )
    return "UNKNOWN_ERROR", str(body.get("message") or error or "Unknown error"), None


class PaymentServerClient:
    """Async client for the payment server.

    Every request authenticates with the static service credential from
    :class:`PaymentServerConfig`. The end user's bearer token is never
    forwarded.
    """

    def __init__(self, config: PaymentServerConfig | Dict[str, Any]) -> None:
        if isinstance(config, dict):
            config = PaymentServerConfig(**config)
        if not config.auth_token:
            raise ValueError("PaymentServerConfig.auth_token is required")

        self._url = config.url.rstrip("/")
        self._auth_token = config.auth_token
        self._timeout = config.timeout
        self._http_client = config.http_client
        self._owns_client = config.http_client is None

    @property
    def url(self) -> str:
        return self._url

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            import httpx

            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> PaymentServerClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _headers(self) -> Dict[str, str]:
        credential = base64.b64encode(f"{self._auth_token}:".encode("utf-8")).decode("ascii")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Basic {credential}",
        }

    async def _post(self, path: str, charge: Charge) -> httpx.Response:
        import httpx

        client = self._get_async_client()
        try:
            return await client.post(
                f"{self._url}{path}",
                headers=self._headers(),
                json=_charge_to_payload(charge),
            )
        except httpx.TimeoutException as exc:
            raise PaymentServerTransportError(
                f"Payment server timed out on {path}", endpoint=path
            ) from exc
        except httpx.TransportError as exc:
            raise PaymentServerTransportError(
                f"Payment server unreachable on {path}: {exc}", endpoint=path
            ) from exc

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        error_code, message, details = _error_fields(response)
        logger.warning(
            "Payment server %s failed with %s: %s (code: %s)",
            path,
            response.status_code,
            message,
            error_code,
        )
        raise PaymentServerError(
            f"Payment server returned {response.status_code} from {path}: {message}",
            status_code=response.status_code,
            error_code=error_code,
            details=details,
            endpoint=path,
        )

    async def charge(self, charge: Charge) -> ChargeResponse:
        """Attempt to charge ``charge.source``.

        Returns:
            ChargeResponse with ``success=True`` on HTTP 200, or ``success=False``
            and the pending payment on HTTP 402.

        Raises:
            PaymentServerError: On any other status or a malformed 402 body.
            PaymentServerTransportError: On timeout or connection failure.
        """
        response = await self._post("/charge", charge)
        if response.status_code == 200:
            return ChargeResponse(success=True)
        if response.status_code != 402:
            self._raise_for_status(response, "/charge")

        try:
            pending = PendingPayment.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise PaymentServerError(
                f"Payment server returned an invalid 402 body from /charge: {exc}",
                status_code=402,
                endpoint="/charge",
            ) from exc
        return ChargeResponse(success=False, required_payment=pending)

    async def create_payment_request(self, charge: Charge) -> str:
        """Create a pending payment request and return its id."""
        response = await self._post("/payment-request", charge)
        if response.status_code != 200:
            self._raise_for_status(response, "/payment-request")

        try:
            body: Optional[Dict[str, Any]] = response.json()
        except ValueError as exc:
            raise PaymentServerError(
                f"POST /payment-request returned invalid JSON: {exc}",
                status_code=200,
                endpoint="/payment-request",
            ) from exc

        payment_request_id = body.get("id") if isinstance(body, dict) else None
        if not payment_request_id:
            raise PaymentServerError(
                "POST /payment-request response did not contain an id",
                status_code=200,
                endpoint="/payment-request",
            )
        return str(payment_request_id)
