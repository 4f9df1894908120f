"""ATXP HTTP middleware wrappers for FastAPI and Flask."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Any

from ._runner import run_async
from .challenge import ChallengeResponse
from .config import ServerConfig, build_server_config, config_summary
from .context import atxp_context
from .errors import PaymentRequiredError, RemoteServiceError
from .mcp import parse_body
from .server import evaluate_request, payment_required_response, remote_service_error

logger = logging.getLogger(__name__)


def _config_from_kwargs(config_kwargs: dict[str, Any]) -> ServerConfig:
    config = config_kwargs.pop("config", None)
    if config is None:
        config = build_server_config(**config_kwargs)
    elif config_kwargs:
        raise TypeError("Pass either config or build_server_config arguments, not both")
    logger.debug("ATXP middleware configured: %s", config_summary(config))
    return config


# =========================================================================
# FastAPI wrappers (async)
# =========================================================================


def fastapi_atxp_middleware_from_config(**config_kwargs: Any):
    """Build an ``@app.middleware("http")`` function guarding the MCP endpoint.

    Accepts either a prebuilt ``config=ServerConfig`` or the keyword arguments
    of :func:`atxp_server.config.build_server_config`.
    """
    from fastapi.responses import Response

    config = _config_from_kwargs(config_kwargs)

    def _to_response(result: ChallengeResponse) -> Response:
        return Response(content=result.body, status_code=result.status, headers=result.headers)

    async def middleware(request, call_next):
        parsed_body = None
        if request.method.upper() == "POST":
            parsed_body = parse_body(await request.body(), request.headers.get("content-type"))

        decision = await evaluate_request(
            config, str(request.url), request.method, request.headers, parsed_body
        )
        if decision.response is not None:
            return _to_response(decision.response)
        if decision.passthrough:
            return await call_next(request)

        with atxp_context(config, decision.resource, decision.token_check):
            try:
                return await call_next(request)
            except PaymentRequiredError as err:
                return _to_response(payment_required_response(err, decision.requests))
            except RemoteServiceError as err:
                return _to_response(remote_service_error(err))

    return middleware


# =========================================================================
# Flask wrappers (sync)
# =========================================================================


def flask_atxp_middleware_from_config(app, **config_kwargs: Any):
    """Install ATXP request hooks on a Flask ``app``.

    The async pipeline runs on a shared background event loop; the request
    context is bound on the Flask worker thread so handlers can call
    :func:`atxp_server.payment.require_payment_sync`.
    """
    from flask import Response, g, request

    config = _config_from_kwargs(config_kwargs)

    def _to_response(result: ChallengeResponse) -> Response:
        return Response(result.body, status=result.status, headers=result.headers)

    def before_request():
        parsed_body = None
        if request.method.upper() == "POST":
            parsed_body = parse_body(request.get_data(cache=True), request.content_type)

        decision = run_async(
            evaluate_request(config, request.url, request.method, request.headers, parsed_body)
        )
        if decision.response is not None:
            return _to_response(decision.response)
        if decision.passthrough:
            return None

        stack = ExitStack()
        stack.enter_context(atxp_context(config, decision.resource, decision.token_check))
        g.atxp_context = stack
        g.atxp_requests = decision.requests
        return None

    def teardown_request(exc):
        stack = g.pop("atxp_context", None)
        if stack is not None:
            stack.close()

    def handle_payment_required(err: PaymentRequiredError):
        return _to_response(payment_required_response(err, g.get("atxp_requests", ())))

    def handle_remote_service_error(err: RemoteServiceError):
        return _to_response(remote_service_error(err))

    app.before_request(before_request)
    app.teardown_request(teardown_request)
    app.register_error_handler(PaymentRequiredError, handle_payment_required)
    app.register_error_handler(RemoteServiceError, handle_remote_service_error)
    return app
