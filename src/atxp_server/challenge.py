"""RFC 6750 challenge responses for failed token checks."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .types import TokenCheck, TokenProblem

# https://datatracker.ietf.org/doc/html/rfc6750#section-3.1
_CHALLENGES: Dict[TokenProblem, Tuple[int, Dict[str, str]]] = {
    TokenProblem.NO_TOKEN: (401, {}),
    TokenProblem.NON_BEARER_AUTH_HEADER: (
        400,
        {
            "error": "invalid_request",
            "error_description": "Authorization header did not include a Bearer token",
        },
    ),
    TokenProblem.INVALID_TOKEN: (
        401,
        {"error": "invalid_token", "error_description": "Token is not active"},
    ),
    TokenProblem.INVALID_AUDIENCE: (
        401,
        {
            "error": "invalid_token",
            "error_description": "Token does not match the expected audience",
        },
    ),
    TokenProblem.NON_SUFFICIENT_FUNDS: (
        403,
        {"error": "insufficient_scope", "error_description": "Non sufficient funds"},
    ),
    TokenProblem.INTROSPECT_ERROR: (
        502,
        {"error": "server_error", "error_description": "An internal server error occurred"},
    ),
}


@dataclass(frozen=True)
class ChallengeResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = "{}"

    def json(self) -> Dict[str, str]:
        return json.loads(self.body)


def _lookup(problem) -> Tuple[int, Dict[str, str]]:
    try:
        return _CHALLENGES[TokenProblem(problem)]
    except ValueError:
        return 401, {}


def build_challenge(token_check: TokenCheck) -> ChallengeResponse | None:
    if token_check.passes:
        return None

    status, body = _lookup(token_check.problem)
    return ChallengeResponse(
        status=status,
        headers={
            "Content-Type": "application/json",
            "WWW-Authenticate": f'Bearer resource_metadata="{token_check.resource_metadata_url}"',
        },
        body=json.dumps(body),
    )
