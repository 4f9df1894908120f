"""ATXP resource-server integration package (Python)."""

from __future__ import annotations

from .challenge import ChallengeResponse, build_challenge
from .config import ServerConfig, build_server_config, parse_destination
from .constants import (
    SUPPORTED_CHAINS,
    SUPPORTED_NETWORKS,
    Chain,
    Currency,
    Network,
    WalletType,
    get_network,
)
from .context import (
    RequestContext,
    atxp_account_id,
    atxp_context,
    atxp_token,
    current_context,
    get_atxp_config,
    get_atxp_resource,
)
from .destinations import (
    DestinationResolver,
    HostedDestinationResolver,
    PassthroughDestinationResolver,
    build_destination_registry,
    resolve_destinations,
)
from .errors import (
    AtxpError,
    ConfigurationError,
    DestinationResolutionError,
    IntrospectionError,
    MissingAuthenticationError,
    PaymentRequiredError,
    PaymentServerError,
    RemoteServiceError,
    TransportError,
    UnsupportedNetworkError,
)
from .http import fastapi_atxp_middleware_from_config, flask_atxp_middleware_from_config
from .mcp import parse_body, parse_mcp_requests
from .oauth import ClientCredentials, OAuthResourceClient
from .payment import require_payment, require_payment_sync
from .payment_server import PaymentServer, PaymentServerClient, PaymentServerConfig
from .server import Decision, evaluate_request
from .token import check_token
from .types import (
    Charge,
    ChargeResponse,
    Destination,
    JsonRpcRequest,
    PaymentDestinationOption,
    PaymentRequestOption,
    PendingPayment,
    Source,
    TokenCheck,
    TokenData,
    TokenProblem,
)

__all__ = [
    "SUPPORTED_CHAINS",
    "SUPPORTED_NETWORKS",
    "Chain",
    "Currency",
    "Network",
    "WalletType",
    "get_network",
    "ServerConfig",
    "build_server_config",
    "parse_destination",
    "OAuthResourceClient",
    "ClientCredentials",
    "check_token",
    "build_challenge",
    "ChallengeResponse",
    "parse_body",
    "parse_mcp_requests",
    "RequestContext",
    "atxp_context",
    "current_context",
    "get_atxp_config",
    "get_atxp_resource",
    "atxp_account_id",
    "atxp_token",
    "DestinationResolver",
    "PassthroughDestinationResolver",
    "HostedDestinationResolver",
    "build_destination_registry",
    "resolve_destinations",
    "PaymentServer",
    "PaymentServerClient",
    "PaymentServerConfig",
    "require_payment",
    "require_payment_sync",
    "Decision",
    "evaluate_request",
    "Charge",
    "ChargeResponse",
    "Destination",
    "JsonRpcRequest",
    "PaymentDestinationOption",
    "PaymentRequestOption",
    "PendingPayment",
    "Source",
    "TokenCheck",
    "TokenData",
    "TokenProblem",
    "AtxpError",
    "ConfigurationError",
    "UnsupportedNetworkError",
    "MissingAuthenticationError",
    "RemoteServiceError",
    "TransportError",
    "IntrospectionError",
    "DestinationResolutionError",
    "PaymentServerError",
    "PaymentRequiredError",
    "fastapi_atxp_middleware_from_config",
    "flask_atxp_middleware_from_config",
]
