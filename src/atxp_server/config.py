"""Server configuration and setup-time validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .constants import (
    DEFAULT_ACCOUNTS_SERVER,
    DEFAULT_AUTHORIZATION_SERVER,
    DEFAULT_PAYEE_NAME,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_MINIMUM_PAYMENT,
    Currency,
    Network,
)
from .destinations import DestinationResolver, build_destination_registry
from .errors import ConfigurationError
from .oauth import OAuthResourceClient
from .payment_server import PaymentServer, PaymentServerClient, PaymentServerConfig
from .types import PaymentDestinationOption

__all__ = [
    "ServerConfig",
    "build_server_config",
    "config_summary",
    "parse_destination",
]

DestinationLike = Union[PaymentDestinationOption, Mapping[str, Any], str]

_TRUTHY = {"1", "true", "yes", "on"}


def _env(key: str) -> Optional[str]:
    value = os.environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_flag(key: str) -> bool:
    value = _env(key)
    return value is not None and value.lower() in _TRUTHY


@dataclass(frozen=True)
class ServerConfig:
    destinations: Tuple[PaymentDestinationOption, ...]
    oauth_client: OAuthResourceClient
    payment_server: PaymentServer
    destination_registry: Mapping[Network, DestinationResolver]
    mount_path: str = "/"
    currency: Currency = Currency.USDC
    server: str = DEFAULT_AUTHORIZATION_SERVER
    accounts_server: str = DEFAULT_ACCOUNTS_SERVER
    payee_name: str = DEFAULT_PAYEE_NAME
    resource: Optional[str] = None
    allow_http: bool = False
    minimum_payment: Optional[Decimal] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS


def parse_destination(
    value: DestinationLike, currency: Currency = Currency.USDC
) -> PaymentDestinationOption:
    """Accept an option model, a dict, or a ``"<network>:<address>"`` account id."""
    if isinstance(value, PaymentDestinationOption):
        return value
    if isinstance(value, str):
        network, sep, address = value.partition(":")
        if not sep:
            raise ConfigurationError(
                f"Invalid destination {value!r}. Expected format: network:address"
            )
        value = {"network": network, "address": address}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Invalid destination type: {type(value)}")
    if not value.get("network") or not value.get("address"):
        raise ConfigurationError("Every destination needs both a network and an address")
    try:
        return PaymentDestinationOption.model_validate({"currency": currency, **value})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid destination {dict(value)}: {exc}") from exc


def _parse_minimum_payment(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(f"Invalid minimum_payment: {value}") from exc
    if not amount.is_finite():
        raise ConfigurationError(f"minimum_payment must be a finite amount, got {value}")
    if amount < 0:
        raise ConfigurationError("minimum_payment must be non-negative")
    if amount > MAX_MINIMUM_PAYMENT:
        raise ConfigurationError(f"minimum_payment cannot exceed ${MAX_MINIMUM_PAYMENT}")
    return amount


def build_server_config(
    destinations: Iterable[DestinationLike],
    *,
    mount_path: str = "/",
    currency: Currency | str = Currency.USDC,
    server: Optional[str] = None,
    accounts_server: Optional[str] = None,
    payee_name: str = DEFAULT_PAYEE_NAME,
    resource: Optional[str] = None,
    allow_http: Optional[bool] = None,
    minimum_payment: Decimal | str | float | int | None = None,
    auth_client_token: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    oauth_client: Optional[OAuthResourceClient] = None,
    payment_server: Optional[PaymentServer] = None,
    destination_registry: Optional[Mapping[Network, DestinationResolver]] = None,
) -> ServerConfig:
    """Validate arguments and build an immutable :class:`ServerConfig`.

    Environment variables are read here, at build time:

    * ``ATXP_AUTHORIZATION_SERVER`` and ``ATXP_ACCOUNTS_SERVER`` override the
      default servers when not passed explicitly.
    * ``ATXP_ALLOW_HTTP`` allows plain-http resources and authorization servers.
    * ``ATXP_AUTH_CLIENT_TOKEN`` is the payment server credential used when no
      ``payment_server`` is supplied.

    Raises:
        ConfigurationError: If the destinations are empty or malformed, the
            minimum payment exceeds the ceiling, or no payment server
            credential is available.
    """
    try:
        currency = Currency(currency)
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported currency {currency}") from exc

    parsed = tuple(parse_destination(d, currency) for d in destinations or ())
    if not parsed:
        raise ConfigurationError("At least one payment destination is required")

    minimum = _parse_minimum_payment(minimum_payment)
    server = server or _env("ATXP_AUTHORIZATION_SERVER") or DEFAULT_AUTHORIZATION_SERVER
    accounts_server = accounts_server or _env("ATXP_ACCOUNTS_SERVER") or DEFAULT_ACCOUNTS_SERVER
    if allow_http is None:
        allow_http = _env_flag("ATXP_ALLOW_HTTP")

    if payment_server is None:
        token = auth_client_token or _env("ATXP_AUTH_CLIENT_TOKEN")
        if not token:
            raise ConfigurationError(
                "ATXP_AUTH_CLIENT_TOKEN is not set. If no payment server is provided, "
                "you must set ATXP_AUTH_CLIENT_TOKEN."
            )
        payment_server = PaymentServerClient(
            PaymentServerConfig(auth_token=token, url=server, timeout=timeout)
        )

    if oauth_client is None:
        oauth_client = OAuthResourceClient(
            client_name=payee_name,
            allow_insecure_requests=allow_http,
            timeout=timeout,
        )

    if destination_registry is None:
        destination_registry = build_destination_registry(accounts_server, timeout=timeout)

    return ServerConfig(
        destinations=parsed,
        oauth_client=oauth_client,
        payment_server=payment_server,
        destination_registry=destination_registry,
        mount_path=mount_path,
        currency=currency,
        server=server,
        accounts_server=accounts_server,
        payee_name=payee_name,
        resource=resource,
        allow_http=allow_http,
        minimum_payment=minimum,
        timeout=timeout,
    )


def config_summary(config: ServerConfig) -> Dict[str, Any]:
    """Loggable view of a config, without clients or credentials."""
    return {
        "mount_path": config.mount_path,
        "server": config.server,
        "payee_name": config.payee_name,
        "destinations": [d.model_dump(mode="json") for d in config.destinations],
        "minimum_payment": (
            str(config.minimum_payment) if config.minimum_payment is not None else None
        ),
    }
