"""Shared constants for the ATXP resource server."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List

from .errors import UnsupportedNetworkError


DEFAULT_AUTHORIZATION_SERVER = "https://auth.atxp.ai"
DEFAULT_ACCOUNTS_SERVER = "https://accounts.atxp.ai"
DEFAULT_PAYEE_NAME = "An ATXP Server"
DEFAULT_TIMEOUT_SECONDS = 30.0

# Upper bound for a configured minimum payment, in the resource's currency.
MAX_MINIMUM_PAYMENT = Decimal("1.00")

PAYMENT_REQUIRED_ERROR_CODE = -30402
# Clients match on this prefix to detect a payment-required MCP error; keep it stable.
PAYMENT_REQUIRED_PREAMBLE = "Payment via ATXP is required. "

PROTECTED_RESOURCE_METADATA_PATH = "/.well-known/oauth-protected-resource"
AUTHORIZATION_SERVER_METADATA_PATH = "/.well-known/oauth-authorization-server"

# Same ceiling the MCP SDK applies to a single message.
MAXIMUM_MESSAGE_SIZE = 4 * 1024 * 1024


class Currency(str, Enum):
    USDC = "USDC"


class Network(str, Enum):
    SOLANA = "solana"
    BASE = "base"
    WORLD = "world"
    POLYGON = "polygon"
    BASE_SEPOLIA = "base_sepolia"
    WORLD_SEPOLIA = "world_sepolia"
    POLYGON_AMOY = "polygon_amoy"
    ATXP = "atxp"


class Chain(str, Enum):
    SOLANA = "solana"
    BASE = "base"
    WORLD = "world"
    POLYGON = "polygon"
    BASE_SEPOLIA = "base_sepolia"
    WORLD_SEPOLIA = "world_sepolia"
    POLYGON_AMOY = "polygon_amoy"


class WalletType(str, Enum):
    EOA = "eoa"
    SMART = "smart"


SUPPORTED_NETWORKS: List[str] = [network.value for network in Network]
SUPPORTED_CHAINS: List[str] = [chain.value for chain in Chain]


def get_network(value: str | Network) -> Network:
    try:
        return Network(value)
    except ValueError as exc:
        raise UnsupportedNetworkError(f"Unsupported network {value}") from exc


def chain_for_network(network: Network) -> Chain | None:
    """Return the chain a network settles on directly, or None for hosted networks."""
    try:
        return Chain(network.value)
    except ValueError:
        return None
