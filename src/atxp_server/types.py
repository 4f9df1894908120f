"""Wire and domain types for the ATXP resource server."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .constants import Chain, Currency, Network, WalletType


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class TokenProblem(str, Enum):
    NO_TOKEN = "NO-TOKEN"
    NON_BEARER_AUTH_HEADER = "NON-BEARER-AUTH-HEADER"
    INVALID_TOKEN = "INVALID-TOKEN"
    INVALID_AUDIENCE = "INVALID-AUDIENCE"
    NON_SUFFICIENT_FUNDS = "NON-SUFFICIENT-FUNDS"
    INTROSPECT_ERROR = "INTROSPECT-ERROR"


class TokenData(BaseModel):
    """Claims returned by token introspection (RFC 7662)."""

    active: bool
    scope: Optional[str] = None
    sub: Optional[str] = None
    aud: Optional[Union[str, List[str]]] = None
    spend_limit: Optional[Decimal] = None

    model_config = ConfigDict(extra="allow")

    @property
    def audiences(self) -> List[str]:
        if self.aud is None:
            return []
        if isinstance(self.aud, str):
            return [self.aud]
        return list(self.aud)


class TokenCheck(BaseModel):
    passes: bool
    problem: Optional[Union[TokenProblem, str]] = None
    token: Optional[str] = None
    data: Optional[TokenData] = None
    resource_metadata_url: str

    @model_validator(mode="after")
    def _problem_iff_failing(self) -> "TokenCheck":
        if self.passes and self.problem is not None:
            raise ValueError("a passing token check cannot carry a problem")
        if not self.passes and self.problem is None:
            raise ValueError("a failing token check must carry a problem")
        return self


class PaymentDestinationOption(_WireModel):
    """A configured place to receive funds. The amount is supplied per charge."""

    network: Network
    address: str
    currency: Currency = Currency.USDC

    @field_validator("address")
    def validate_address(cls, v):
        if not v or not v.strip():
            raise ValueError("address must be a non-empty string")
        return v.strip()


class PaymentRequestOption(_WireModel):
    network: Network
    currency: Currency
    address: str
    amount: Decimal

    @field_validator("amount")
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v


class Source(_WireModel):
    address: str
    chain: Chain
    wallet_type: WalletType


class Destination(_WireModel):
    chain: Chain
    currency: Currency
    address: str
    amount: Decimal

    @field_validator("amount")
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v


class Charge(_WireModel):
    source: str
    destinations: List[Destination]
    payee_name: str


class PendingPayment(_WireModel):
    """A pending payment record returned by the payment server with a 402."""

    id: str
    amount: Optional[Decimal] = None

    model_config = ConfigDict(extra="allow")


class ChargeResponse(_WireModel):
    success: bool
    required_payment: Optional[PendingPayment] = None

    @model_validator(mode="after")
    def _required_payment_iff_failed(self) -> "ChargeResponse":
        if self.success and self.required_payment is not None:
            raise ValueError("a successful charge cannot require payment")
        if not self.success and self.required_payment is None:
            raise ValueError("a failed charge must carry the required payment")
        return self


class JsonRpcRequest(BaseModel):
    jsonrpc: Literal["2.0"]
    method: str = Field(min_length=1)
    # Any JSON value; key presence is checked before validation.
    id: Any
    params: Optional[Any] = None

    model_config = ConfigDict(extra="allow")


class ProtectedResourceMetadata(BaseModel):
    resource: str
    resource_name: str
    authorization_servers: List[str]
    bearer_methods_supported: List[str] = Field(default_factory=lambda: ["header"])
    scopes_supported: List[str] = Field(default_factory=lambda: ["read", "write"])
