import json
from decimal import Decimal

import pytest

from atxp_server.errors import IntrospectionError, PaymentRequiredError
from atxp_server.server import evaluate_request, payment_required_response
from atxp_server.types import JsonRpcRequest, TokenProblem

MCP_URL = "https://example.com/mcp"
TOOL_CALL = {"jsonrpc": "2.0", "method": "tools/call", "id": 7, "params": {"name": "hello"}}


@pytest.fixture
def config(make_config):
    return make_config(mount_path="/mcp")


@pytest.mark.asyncio
async def test_protected_resource_metadata_is_answered(config):
    decision = await evaluate_request(
        config, "https://example.com/.well-known/oauth-protected-resource/mcp", "GET", {}, None
    )
    assert decision.response.status == 200
    assert decision.response.json()["resource"] == MCP_URL


@pytest.mark.asyncio
async def test_authorization_server_metadata_is_proxied(config):
    decision = await evaluate_request(
        config, "https://example.com/.well-known/oauth-authorization-server", "GET", {}, None
    )
    body = decision.response.json()
    assert decision.response.status == 200
    assert body["issuer"] == "https://auth.atxp.ai"
    assert body["introspection_endpoint"] == "https://upstream.example/introspect"


@pytest.mark.asyncio
async def test_non_mcp_request_passes_through(config, oauth_client):
    decision = await evaluate_request(config, "https://example.com/health", "GET", {}, None)
    assert decision.passthrough
    assert oauth_client.introspected == []


@pytest.mark.asyncio
async def test_notification_passes_through(config, oauth_client):
    notification = {"jsonrpc": "2.0", "method": "notifications/initialized"}
    decision = await evaluate_request(config, MCP_URL, "POST", {}, notification)
    assert decision.passthrough
    assert oauth_client.introspected == []


@pytest.mark.asyncio
async def test_missing_token_is_challenged(config):
    decision = await evaluate_request(config, MCP_URL, "POST", {}, TOOL_CALL)
    assert decision.response.status == 401
    assert decision.response.headers["WWW-Authenticate"] == (
        'Bearer resource_metadata="https://example.com/.well-known/oauth-protected-resource/mcp"'
    )
    assert decision.token_check is None


@pytest.mark.asyncio
async def test_valid_token_establishes_context(config):
    decision = await evaluate_request(
        config, MCP_URL, "POST", {"authorization": "Bearer tok"}, TOOL_CALL
    )
    assert decision.response is None
    assert decision.resource == MCP_URL
    assert decision.token_check.passes
    assert decision.token_check.data.sub == "user-1"
    assert [r.id for r in decision.requests] == [7]


@pytest.mark.asyncio
async def test_introspection_failure_is_a_502(config, oauth_client, introspection_failure):
    oauth_client.error = introspection_failure
    decision = await evaluate_request(
        config, MCP_URL, "POST", {"Authorization": "Bearer tok"}, TOOL_CALL
    )
    assert decision.response.status == 502
    assert decision.response.json()["error"] == "server_error"


@pytest.mark.asyncio
async def test_authorization_server_metadata_failure_is_a_502(config, oauth_client):
    oauth_client.metadata_error = IntrospectionError("metadata fetch failed")
    decision = await evaluate_request(
        config, "https://example.com/.well-known/oauth-authorization-server", "GET", {}, None
    )
    assert decision.response.status == 502
    assert decision.response.json()["error"] == "server_error"


@pytest.mark.asyncio
async def test_unexpected_failure_is_a_500(config, oauth_client):
    oauth_client.error = RuntimeError("bug")
    decision = await evaluate_request(
        config, MCP_URL, "POST", {"Authorization": "Bearer tok"}, TOOL_CALL
    )
    assert decision.response.status == 500
    assert decision.response.json() == {
        "error": "server_error",
        "error_description": "An internal server error occurred",
    }


def test_token_problem_wire_values():
    assert TokenProblem.NO_TOKEN.value == "NO-TOKEN"
    assert TokenProblem.INTROSPECT_ERROR.value == "INTROSPECT-ERROR"


def test_payment_required_response_addresses_first_request():
    err = PaymentRequiredError("https://auth.atxp.ai", "pr_1", Decimal("0.01"))
    requests = (JsonRpcRequest(jsonrpc="2.0", method="tools/call", id="a"),)

    response = payment_required_response(err, requests)

    body = json.loads(response.body)
    assert response.status == 200
    assert body["jsonrpc"] == "2.0"
    assert body["id"] == "a"
    assert body["error"]["code"] == -30402
    assert body["error"]["data"]["paymentRequestId"] == "pr_1"
