"""Per-network strategies that turn a payment option into concrete on-chain destinations."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Sequence

from pydantic import TypeAdapter, ValidationError
from typing_extensions import assert_never

from .constants import (
    DEFAULT_ACCOUNTS_SERVER,
    DEFAULT_TIMEOUT_SECONDS,
    Network,
    WalletType,
    chain_for_network,
)
from .errors import ConfigurationError, DestinationResolutionError, DestinationTransportError
from .types import Destination, PaymentRequestOption, Source

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

_SOURCES = TypeAdapter(List[Source])


class DestinationResolver(Protocol):
    async def resolve(
        self,
        option: PaymentRequestOption,
        sources: Sequence[Source] = (),
        payment_request_id: Optional[str] = None,
    ) -> List[Destination]:
        ...


class PassthroughDestinationResolver:
    """Pays the option's address directly on the chain of the same name."""

    def __init__(self, network: Network) -> None:
        self.network = network

    async def resolve(
        self,
        option: PaymentRequestOption,
        sources: Sequence[Source] = (),
        payment_request_id: Optional[str] = None,
    ) -> List[Destination]:
        del sources, payment_request_id
        if option.network != self.network:
            return []
        chain = chain_for_network(option.network)
        if chain is None:
            return []
        return [
            Destination(
                chain=chain,
                currency=option.currency,
                address=option.address,
                amount=option.amount,
            )
        ]


class HostedDestinationResolver:
    """Resolves an ATXP account id into the chain addresses that account can receive on.

    One account may fan out to several chains; each resulting destination
    carries the full option amount so the payer can fund whichever one it
    holds funds on.
    """

    network = Network.ATXP

    def __init__(
        self,
        accounts_server: str = DEFAULT_ACCOUNTS_SERVER,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Any = None,
    ) -> None:
        self._accounts_server = accounts_server.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            import httpx

            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def resolve(
        self,
        option: PaymentRequestOption,
        sources: Sequence[Source] = (),
        payment_request_id: Optional[str] = None,
    ) -> List[Destination]:
        del sources, payment_request_id
        if option.network != self.network:
            return []

        account_sources = await self.account_sources(option.address)
        destinations = [
            Destination(
                chain=source.chain,
                currency=option.currency,
                address=source.address,
                amount=option.amount,
            )
            # Only EOA wallets receive payments.
            for source in account_sources
            if source.wallet_type == WalletType.EOA
        ]
        if not account_sources:
            logger.warning("No sources found for account %s", option.address)
        else:
            logger.debug("Found %d sources for account %s", len(account_sources), option.address)
        return destinations

    async def account_sources(self, account_id: str) -> List[Source]:
        import httpx

        # atxp:atxp_acct_xxx -> atxp_acct_xxx
        unqualified_id = account_id.split(":", 1)[1] if ":" in account_id else account_id
        url = f"{self._accounts_server}/account/{unqualified_id}/sources"
        logger.debug("Fetching account sources from %s", url)

        client = self._get_async_client()
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as exc:
            raise DestinationTransportError(f"Accounts service timed out on {url}") from exc
        except httpx.TransportError as exc:
            raise DestinationTransportError(f"Accounts service unreachable on {url}: {exc}") from exc

        if response.status_code != 200:
            raise DestinationResolutionError(
                f"Failed to fetch account sources ({response.status_code}): {response.text}"
            )
        try:
            return _SOURCES.validate_python(response.json() or [])
        except (ValueError, ValidationError) as exc:
            raise DestinationResolutionError(f"Invalid account sources response: {exc}") from exc


DestinationRegistry = Mapping[Network, DestinationResolver]


def _resolver_for(network: Network, hosted: HostedDestinationResolver) -> DestinationResolver:
    if network is Network.SOLANA:
        return PassthroughDestinationResolver(network)
    elif network is Network.BASE:
        return PassthroughDestinationResolver(network)
    elif network is Network.WORLD:
        return PassthroughDestinationResolver(network)
    elif network is Network.POLYGON:
        return PassthroughDestinationResolver(network)
    elif network is Network.BASE_SEPOLIA:
        return PassthroughDestinationResolver(network)
    elif network is Network.WORLD_SEPOLIA:
        return PassthroughDestinationResolver(network)
    elif network is Network.POLYGON_AMOY:
        return PassthroughDestinationResolver(network)
    elif network is Network.ATXP:
        return hosted
    else:
        assert_never(network)


def build_destination_registry(
    accounts_server: str = DEFAULT_ACCOUNTS_SERVER,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    http_client: Any = None,
) -> Dict[Network, DestinationResolver]:
    """Map every supported network to exactly one resolver."""
    hosted = HostedDestinationResolver(accounts_server, timeout=timeout, http_client=http_client)
    registry: Dict[Network, DestinationResolver] = {}
    for network in Network:
        try:
            registry[network] = _resolver_for(network, hosted)
        except AssertionError as exc:
            raise ConfigurationError(f"No destination resolver for network {network.value}") from exc
    return registry


async def resolve_destinations(
    registry: DestinationRegistry,
    options: Sequence[PaymentRequestOption],
    sources: Sequence[Source] = (),
    payment_request_id: Optional[str] = None,
) -> List[Destination]:
    """Resolve every option through every resolver, concurrently.

    Results are concatenated in option order, then registry order, no matter
    which lookup finishes first. The first failure cancels the lookups still
    in flight and is re-raised once they have settled.
    """
    resolvers = list(registry.values())
    tasks = [
        asyncio.ensure_future(resolver.resolve(option, sources, payment_request_id))
        for option in options
        for resolver in resolvers
    ]
    if not tasks:
        return []

    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)

    failures = [
        task.exception() for task in tasks if not task.cancelled() and task.exception() is not None
    ]
    if failures:
        logger.warning("Destination resolution failed: %s", failures[0])
        raise failures[0]

    destinations: List[Destination] = []
    for task in tasks:
        destinations.extend(task.result())
    return destinations
