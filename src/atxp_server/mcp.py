"""Detect the MCP JSON-RPC calls in an inbound request."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from .config import ServerConfig
from .constants import MAXIMUM_MESSAGE_SIZE
from .types import JsonRpcRequest

logger = logging.getLogger(__name__)


def _charset(content_type: Optional[str]) -> str:
    if not content_type:
        return "utf-8"
    for param in content_type.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip('"')
    return "utf-8"


def parse_body(raw: bytes, content_type: Optional[str] = None) -> Any:
    """Decode a raw request body as JSON, or return None if it cannot be."""
    if len(raw) > MAXIMUM_MESSAGE_SIZE:
        logger.error("Request body too large. Maximum size is %d bytes", MAXIMUM_MESSAGE_SIZE)
        return None
    if not raw:
        return None
    try:
        return json.loads(raw.decode(_charset(content_type)))
    except (LookupError, UnicodeDecodeError, ValueError) as exc:
        logger.error("Could not parse request body: %s", exc)
        return None


def _as_request(message: Any) -> JsonRpcRequest | None:
    # An explicit "id": null is still an id; only a missing key makes a notification.
    if not isinstance(message, dict) or "id" not in message:
        return None
    try:
        return JsonRpcRequest.model_validate(message)
    except ValidationError:
        return None


def parse_mcp_requests(
    config: ServerConfig,
    request_url: str,
    method: Optional[str],
    parsed_body: Any,
) -> List[JsonRpcRequest]:
    """Return the JSON-RPC requests this server must authorize, in order."""
    if not method or method.lower() != "post":
        return []

    # The middleware is mounted at the root to serve resource metadata, but only
    # guards the MCP endpoint at mount_path.
    path = urlparse(request_url).path.rstrip("/")
    mount_path = config.mount_path.rstrip("/")
    if path != mount_path and path != f"{mount_path}/message":
        logger.debug(
            "Request path (%s) does not match the mount path (%s), skipping", path, mount_path
        )
        return []

    if isinstance(parsed_body, list):
        requests = [r for r in map(_as_request, parsed_body) if r is not None]
        if len(requests) != len(parsed_body):
            logger.debug(
                "Dropped %d batch entries that were not JSON-RPC requests",
                len(parsed_body) - len(requests),
            )
        return requests

    request = _as_request(parsed_body)
    return [request] if request is not None else []
