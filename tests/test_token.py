from decimal import Decimal

import pytest

from atxp_server.token import check_token
from atxp_server.types import TokenData, TokenProblem

RESOURCE = "https://example.com/mcp"
METADATA_URL = "https://example.com/.well-known/oauth-protected-resource/mcp"


@pytest.mark.asyncio
async def test_missing_header(make_config, oauth_client):
    check = await check_token(make_config(), RESOURCE, None)
    assert check.passes is False
    assert check.problem is TokenProblem.NO_TOKEN
    assert check.resource_metadata_url == METADATA_URL
    assert oauth_client.introspected == []


@pytest.mark.asyncio
async def test_non_bearer_header(make_config, oauth_client):
    check = await check_token(make_config(), RESOURCE, "Basic dXNlcjpwYXNz")
    assert check.problem is TokenProblem.NON_BEARER_AUTH_HEADER
    assert oauth_client.introspected == []


@pytest.mark.asyncio
async def test_introspection_failure(make_config, oauth_client, introspection_failure):
    oauth_client.error = introspection_failure
    check = await check_token(make_config(), RESOURCE, "Bearer tok")
    assert check.problem is TokenProblem.INTROSPECT_ERROR
    assert check.token == "tok"


@pytest.mark.asyncio
async def test_inactive_token(make_config, oauth_client):
    oauth_client.data = TokenData(active=False)
    check = await check_token(make_config(), RESOURCE, "Bearer tok")
    assert check.problem is TokenProblem.INVALID_TOKEN
    assert check.data.active is False


@pytest.mark.asyncio
async def test_audience_mismatch(make_config, oauth_client):
    oauth_client.data = TokenData(active=True, sub="u1", aud="https://other.example/mcp")
    check = await check_token(make_config(), RESOURCE, "Bearer tok")
    assert check.problem is TokenProblem.INVALID_AUDIENCE


@pytest.mark.asyncio
async def test_audience_match_ignores_trailing_slash(make_config, oauth_client):
    oauth_client.data = TokenData(active=True, sub="u1", aud=["https://x.example", RESOURCE + "/"])
    check = await check_token(make_config(), RESOURCE, "Bearer tok")
    assert check.passes is True


@pytest.mark.asyncio
async def test_spend_limit_below_minimum_payment(make_config, oauth_client):
    oauth_client.data = TokenData(active=True, sub="u1", spend_limit=Decimal("0.05"))
    check = await check_token(make_config(minimum_payment="0.10"), RESOURCE, "Bearer tok")
    assert check.problem is TokenProblem.NON_SUFFICIENT_FUNDS


@pytest.mark.asyncio
async def test_passing_token_carries_token_and_claims(make_config, oauth_client):
    check = await check_token(make_config(), RESOURCE, "Bearer tok")
    assert check.passes is True
    assert check.problem is None
    assert check.token == "tok"
    assert check.data.sub == "user-1"
    assert check.resource_metadata_url == METADATA_URL
    assert oauth_client.introspected == [("https://auth.atxp.ai", "tok")]
