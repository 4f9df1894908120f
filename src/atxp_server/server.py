"""Framework-agnostic request pipeline shared by the HTTP adapters."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .challenge import ChallengeResponse, build_challenge
from .config import ServerConfig
from .errors import PaymentRequiredError, RemoteServiceError
from .mcp import parse_mcp_requests
from .resource import (
    get_protected_resource_metadata,
    get_resource,
    is_authorization_server_metadata_request,
)
from .token import check_token
from .types import JsonRpcRequest, TokenCheck

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class Decision:
    """What an adapter should do with a request.

    Exactly one of three outcomes:

    * ``response`` is set: answer with it and do not call the application.
    * ``token_check`` is set: run the application inside an ATXP context for
      ``resource``.
    * neither: pass the request through untouched.
    """

    response: Optional[ChallengeResponse] = None
    resource: Optional[str] = None
    token_check: Optional[TokenCheck] = None
    requests: Tuple[JsonRpcRequest, ...] = ()

    @property
    def passthrough(self) -> bool:
        return self.response is None and self.token_check is None


def json_response(status: int, payload: Any) -> ChallengeResponse:
    return ChallengeResponse(status=status, headers=dict(_JSON_HEADERS), body=json.dumps(payload))


def server_error(status: int = 500) -> ChallengeResponse:
    return json_response(
        status, {"error": "server_error", "error_description": "An internal server error occurred"}
    )


def remote_service_error(error: RemoteServiceError) -> ChallengeResponse:
    """A remote dependency failed: answer 502 rather than a generic 500."""
    logger.error("Remote service error in ATXP middleware: %s", error)
    return server_error(502)


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


async def _authorization_server_metadata(config: ServerConfig) -> ChallengeResponse:
    metadata = dict(await config.oauth_client.authorization_server_metadata(config.server))
    metadata["issuer"] = config.server
    return json_response(200, metadata)


async def _evaluate(
    config: ServerConfig,
    request_url: str,
    method: Optional[str],
    headers: Optional[Mapping[str, str]],
    parsed_body: Any,
) -> Decision:
    logger.debug("Handling %s %s", method, request_url)

    prm = get_protected_resource_metadata(config, request_url, headers)
    if prm is not None:
        return Decision(response=json_response(200, prm.model_dump(mode="json")))

    if (method or "").upper() == "GET" and is_authorization_server_metadata_request(request_url):
        return Decision(response=await _authorization_server_metadata(config))

    mcp_requests = parse_mcp_requests(config, request_url, method, parsed_body)
    logger.debug("%d MCP requests found in request", len(mcp_requests))
    if not mcp_requests:
        return Decision()

    resource = get_resource(config, request_url, headers)
    token_check = await check_token(config, resource, _header(headers, "Authorization"))
    challenge = build_challenge(token_check)
    if challenge is not None:
        logger.info("Token check failed: %s", token_check.problem)
        return Decision(response=challenge, resource=resource)

    logger.debug("Token check passed for %s", token_check.data.sub if token_check.data else None)
    return Decision(resource=resource, token_check=token_check, requests=tuple(mcp_requests))


async def evaluate_request(
    config: ServerConfig,
    request_url: str,
    method: Optional[str],
    headers: Optional[Mapping[str, str]],
    parsed_body: Any,
) -> Decision:
    """Decide how an inbound request is handled.

    Token and funding problems come back as challenge responses. A failing
    remote dependency is answered with a 502 ``server_error`` body; any other
    failure is logged and answered with a 500.
    """
    try:
        return await _evaluate(config, request_url, method, headers, parsed_body)
    except RemoteServiceError as exc:
        return Decision(response=remote_service_error(exc))
    except Exception:
        logger.exception("Critical error in ATXP middleware")
        return Decision(response=server_error())


def payment_required_response(
    error: PaymentRequiredError, requests: Tuple[JsonRpcRequest, ...] = ()
) -> ChallengeResponse:
    """Render a :class:`PaymentRequiredError` as a JSON-RPC error reply.

    The reply is addressed to the first JSON-RPC request of the call, the one
    whose handler asked for payment.
    """
    request_id = requests[0].id if requests else None
    return json_response(
        200, {"jsonrpc": "2.0", "id": request_id, "error": error.to_jsonrpc_error()}
    )
