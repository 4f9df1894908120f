"""Exception types raised by the ATXP resource server."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlparse


class AtxpError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AtxpError, ValueError):
    """Raised at setup time when the server configuration is invalid."""


class UnsupportedNetworkError(ConfigurationError):
    """Raised when a network is not one of the supported networks."""


class MissingAuthenticationError(AtxpError, RuntimeError):
    """Raised when a charge is attempted without an authenticated request context."""


class RemoteServiceError(AtxpError):
    """A remote dependency misbehaved. Surfaces as a 502-class fault."""


class TransportError(RemoteServiceError):
    """A remote call timed out or could not connect."""


class IntrospectionError(RemoteServiceError):
    """Token introspection against the authorization server failed."""


class IntrospectionTransportError(IntrospectionError, TransportError):
    pass


class DestinationResolutionError(RemoteServiceError):
    """The accounts service could not resolve a hosted destination."""


class DestinationTransportError(DestinationResolutionError, TransportError):
    pass


class PaymentServerError(RemoteServiceError):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: str = "UNKNOWN_ERROR",
        details: Any = None,
        endpoint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        self.endpoint = endpoint


class PaymentServerTransportError(PaymentServerError, TransportError):
    pass


class PaymentRequiredError(AtxpError):
    """Signals that the caller must pay out of band and retry the same operation.

    This is not a failure: it carries everything a client needs to complete
    the payment (the authorization server, the payment request id and the
    amount) and then retry referencing ``payment_request_id``.
    """

    def __init__(
        self,
        authorization_server: str,
        payment_request_id: str,
        amount: Optional[Decimal] = None,
    ) -> None:
        parsed = urlparse(authorization_server)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        self.authorization_server = origin
        self.payment_request_id = payment_request_id
        self.amount = amount
        self.payment_request_url = f"{origin}/payment-request/{payment_request_id}"
        super().__init__(self.message)

    @property
    def message(self) -> str:
        from .constants import PAYMENT_REQUIRED_PREAMBLE

        amount_text = f" You will be charged {self.amount}." if self.amount is not None else ""
        return f"{PAYMENT_REQUIRED_PREAMBLE}{amount_text} Please pay at: {self.payment_request_url}"

    @property
    def data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "paymentRequestId": self.payment_request_id,
            "paymentRequestUrl": self.payment_request_url,
        }
        if self.amount is not None:
            data["chargeAmount"] = str(self.amount)
        return data

    def to_jsonrpc_error(self) -> Dict[str, Any]:
        from .constants import PAYMENT_REQUIRED_ERROR_CODE

        return {
            "code": PAYMENT_REQUIRED_ERROR_CODE,
            "message": self.message,
            "data": self.data,
        }
