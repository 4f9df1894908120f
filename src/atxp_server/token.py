"""Bearer token verification."""

from __future__ import annotations

import logging
from typing import Optional

from .config import ServerConfig
from .errors import IntrospectionError
from .resource import resource_metadata_url
from .types import TokenCheck, TokenData, TokenProblem

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def _audience_matches(data: TokenData, resource_url: str) -> bool:
    audiences = data.audiences
    if not audiences:
        return True
    expected = resource_url.rstrip("/")
    return any(aud.rstrip("/") == expected for aud in audiences)


def _has_sufficient_funds(config: ServerConfig, data: TokenData) -> bool:
    if config.minimum_payment is None or data.spend_limit is None:
        return True
    return data.spend_limit >= config.minimum_payment


async def check_token(
    config: ServerConfig,
    resource_url: str,
    authorization_header: Optional[str],
) -> TokenCheck:
    """Check the request's Authorization header against the authorization server.

    Never raises for a bad or missing token; problems are reported on the
    returned :class:`TokenCheck`, which always carries the protected resource
    metadata URL for the challenge.
    """
    metadata_url = resource_metadata_url(resource_url)

    def failure(
        problem: TokenProblem, token: Optional[str] = None, data: Optional[TokenData] = None
    ) -> TokenCheck:
        return TokenCheck(
            passes=False,
            problem=problem,
            token=token,
            data=data,
            resource_metadata_url=metadata_url,
        )

    if not authorization_header:
        return failure(TokenProblem.NO_TOKEN)
    if not authorization_header.startswith(BEARER_PREFIX):
        return failure(TokenProblem.NON_BEARER_AUTH_HEADER)

    token = authorization_header[len(BEARER_PREFIX):].strip()
    try:
        data = await config.oauth_client.introspect_token(config.server, token)
    except IntrospectionError as exc:
        logger.error("Error during token introspection: %s", exc)
        return failure(TokenProblem.INTROSPECT_ERROR, token)

    if not _audience_matches(data, resource_url):
        logger.debug("Token audience %s does not match %s", data.aud, resource_url)
        return failure(TokenProblem.INVALID_AUDIENCE, token, data)
    if not data.active:
        return failure(TokenProblem.INVALID_TOKEN, token, data)
    if not _has_sufficient_funds(config, data):
        return failure(TokenProblem.NON_SUFFICIENT_FUNDS, token, data)

    return TokenCheck(passes=True, token=token, data=data, resource_metadata_url=metadata_url)
