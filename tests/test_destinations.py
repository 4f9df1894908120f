import asyncio
from decimal import Decimal

import pytest

httpx = pytest.importorskip("httpx")

from atxp_server.constants import Chain, Currency, Network
from atxp_server.destinations import (
    HostedDestinationResolver,
    PassthroughDestinationResolver,
    build_destination_registry,
    resolve_destinations,
)
from atxp_server.errors import DestinationResolutionError, DestinationTransportError
from atxp_server.types import Destination, PaymentRequestOption


def _option(network, address, amount="0.01"):
    return PaymentRequestOption(
        network=network, currency=Currency.USDC, address=address, amount=Decimal(amount)
    )


def _sources_handler(seen, sources, status=200):
    def handler(request):
        seen.append(request.url.path)
        return httpx.Response(status, json=sources)

    return handler


@pytest.mark.asyncio
async def test_passthrough_copies_matching_option():
    resolver = PassthroughDestinationResolver(Network.BASE)
    destinations = await resolver.resolve(_option(Network.BASE, "0xabc"))
    assert destinations == [
        Destination(chain=Chain.BASE, currency=Currency.USDC, address="0xabc", amount=Decimal("0.01"))
    ]


@pytest.mark.asyncio
async def test_passthrough_ignores_other_networks():
    resolver = PassthroughDestinationResolver(Network.BASE)
    assert await resolver.resolve(_option(Network.SOLANA, "So1")) == []
    assert await PassthroughDestinationResolver(Network.ATXP).resolve(
        _option(Network.ATXP, "atxp_acct_1")
    ) == []


@pytest.mark.asyncio
async def test_hosted_resolver_expands_eoa_sources():
    seen = []
    sources = [
        {"address": "0xeoa", "chain": "base", "walletType": "eoa"},
        {"address": "0xsmart", "chain": "base", "walletType": "smart"},
        {"address": "So1eoa", "chain": "solana", "walletType": "eoa"},
    ]
    async_client = httpx.AsyncClient(transport=httpx.MockTransport(_sources_handler(seen, sources)))
    resolver = HostedDestinationResolver("https://accounts.test", http_client=async_client)

    try:
        destinations = await resolver.resolve(_option(Network.ATXP, "atxp:atxp_acct_1", "0.5"))
    finally:
        await async_client.aclose()

    assert seen == ["/account/atxp_acct_1/sources"]
    assert [(d.chain, d.address, d.amount) for d in destinations] == [
        (Chain.BASE, "0xeoa", Decimal("0.5")),
        (Chain.SOLANA, "So1eoa", Decimal("0.5")),
    ]


@pytest.mark.asyncio
async def test_hosted_resolver_ignores_direct_networks():
    seen = []
    async_client = httpx.AsyncClient(transport=httpx.MockTransport(_sources_handler(seen, [])))
    resolver = HostedDestinationResolver("https://accounts.test", http_client=async_client)

    try:
        assert await resolver.resolve(_option(Network.BASE, "0xabc")) == []
    finally:
        await async_client.aclose()
    assert seen == []


@pytest.mark.asyncio
async def test_hosted_resolver_error_status():
    async_client = httpx.AsyncClient(
        transport=httpx.MockTransport(_sources_handler([], {"error": "nope"}, status=404))
    )
    resolver = HostedDestinationResolver("https://accounts.test", http_client=async_client)

    try:
        with pytest.raises(DestinationResolutionError):
            await resolver.resolve(_option(Network.ATXP, "atxp_acct_1"))
    finally:
        await async_client.aclose()


@pytest.mark.asyncio
async def test_hosted_resolver_malformed_payload():
    async_client = httpx.AsyncClient(
        transport=httpx.MockTransport(_sources_handler([], [{"address": "0x1"}]))
    )
    resolver = HostedDestinationResolver("https://accounts.test", http_client=async_client)

    try:
        with pytest.raises(DestinationResolutionError):
            await resolver.resolve(_option(Network.ATXP, "atxp_acct_1"))
    finally:
        await async_client.aclose()


@pytest.mark.asyncio
async def test_hosted_resolver_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    resolver = HostedDestinationResolver("https://accounts.test", http_client=async_client)

    try:
        with pytest.raises(DestinationTransportError):
            await resolver.resolve(_option(Network.ATXP, "atxp_acct_1"))
    finally:
        await async_client.aclose()


def test_registry_maps_every_network_to_one_resolver():
    registry = build_destination_registry("https://accounts.test")
    assert list(registry) == list(Network)
    assert isinstance(registry[Network.ATXP], HostedDestinationResolver)
    for network in Network:
        if network is not Network.ATXP:
            assert registry[network].network is network


class _SlowResolver:
    def __init__(self, network, delay):
        self.network = network
        self.delay = delay

    async def resolve(self, option, sources=(), payment_request_id=None):
        await asyncio.sleep(self.delay)
        if option.network != self.network:
            return []
        return [
            Destination(
                chain=Chain(option.network.value),
                currency=option.currency,
                address=option.address,
                amount=option.amount,
            )
        ]


@pytest.mark.asyncio
async def test_resolution_order_is_deterministic():
    registry = {
        Network.BASE: _SlowResolver(Network.BASE, 0.03),
        Network.SOLANA: _SlowResolver(Network.SOLANA, 0.0),
        Network.POLYGON: _SlowResolver(Network.POLYGON, 0.01),
    }
    options = [
        _option(Network.POLYGON, "0xpoly"),
        _option(Network.BASE, "0xbase"),
        _option(Network.SOLANA, "So1"),
    ]

    destinations = await resolve_destinations(registry, options)

    assert [d.address for d in destinations] == ["0xpoly", "0xbase", "So1"]


@pytest.mark.asyncio
async def test_options_without_a_resolver_are_dropped():
    registry = {
        Network.BASE: PassthroughDestinationResolver(Network.BASE),
        Network.SOLANA: PassthroughDestinationResolver(Network.SOLANA),
    }
    options = [
        _option(Network.BASE, "0xbase"),
        _option(Network.SOLANA, "So1"),
        _option(Network.WORLD, "0xworld"),
    ]

    destinations = await resolve_destinations(registry, options)

    assert [d.chain for d in destinations] == [Chain.BASE, Chain.SOLANA]


class _FailingResolver:
    network = Network.ATXP

    async def resolve(self, option, sources=(), payment_request_id=None):
        raise DestinationResolutionError("accounts service down")


class _HangingResolver:
    network = Network.BASE

    def __init__(self):
        self.cancelled = False

    async def resolve(self, option, sources=(), payment_request_id=None):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return []


@pytest.mark.asyncio
async def test_first_failure_cancels_lookups_in_flight():
    hanging = _HangingResolver()
    registry = {Network.BASE: hanging, Network.ATXP: _FailingResolver()}

    with pytest.raises(DestinationResolutionError, match="accounts service down"):
        await asyncio.wait_for(
            resolve_destinations(registry, [_option(Network.ATXP, "atxp_acct_1")]), timeout=1
        )

    assert hanging.cancelled is True


@pytest.mark.asyncio
async def test_no_options_resolve_to_nothing():
    assert await resolve_destinations(build_destination_registry("https://accounts.test"), []) == []
