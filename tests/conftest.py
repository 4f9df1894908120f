from decimal import Decimal

import pytest

from atxp_server.config import build_server_config
from atxp_server.errors import IntrospectionError
from atxp_server.types import ChargeResponse, PendingPayment, TokenData


class StubOAuthClient:
    """Answers introspection from a fixed result instead of the network."""

    def __init__(self, data=None, error=None, metadata=None, metadata_error=None):
        self.data = data if data is not None else TokenData(active=True, sub="user-1")
        self.error = error
        self.metadata = metadata or {
            "issuer": "https://upstream.example",
            "introspection_endpoint": "https://upstream.example/introspect",
        }
        self.metadata_error = metadata_error
        self.introspected = []

    async def introspect_token(self, server, token, additional_parameters=None):
        self.introspected.append((server, token))
        if self.error is not None:
            raise self.error
        return self.data

    async def authorization_server_metadata(self, server):
        if self.metadata_error is not None:
            raise self.metadata_error
        return self.metadata


class FakePaymentServer:
    """Records every call; charges succeed unless ``charge_succeeds`` is False."""

    def __init__(self, charge_succeeds=True, payment_request_id="pr_123", error=None):
        self.charge_succeeds = charge_succeeds
        self.payment_request_id = payment_request_id
        self.error = error
        self.charges = []
        self.payment_requests = []

    async def charge(self, charge):
        self.charges.append(charge)
        if self.error is not None:
            raise self.error
        if self.charge_succeeds:
            return ChargeResponse(success=True)
        return ChargeResponse(
            success=False,
            required_payment=PendingPayment(id="pending", amount=Decimal("0.01")),
        )

    async def create_payment_request(self, charge):
        self.payment_requests.append(charge)
        return self.payment_request_id


@pytest.fixture(autouse=True)
def _clean_atxp_env(monkeypatch):
    for key in (
        "ATXP_AUTHORIZATION_SERVER",
        "ATXP_ACCOUNTS_SERVER",
        "ATXP_ALLOW_HTTP",
        "ATXP_AUTH_CLIENT_TOKEN",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def oauth_client():
    return StubOAuthClient()


@pytest.fixture
def payment_server():
    return FakePaymentServer()


@pytest.fixture
def make_config(oauth_client, payment_server):
    def _make(**overrides):
        kwargs = {
            "destinations": ["base:0xabc"],
            "oauth_client": oauth_client,
            "payment_server": payment_server,
        }
        kwargs.update(overrides)
        return build_server_config(**kwargs)

    return _make


@pytest.fixture
def introspection_failure():
    return IntrospectionError("authorization server unavailable")
