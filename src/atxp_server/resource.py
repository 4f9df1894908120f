"""Resource URL derivation and OAuth protected resource metadata."""

from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import urlparse

from .config import ServerConfig
from .constants import AUTHORIZATION_SERVER_METADATA_PATH, PROTECTED_RESOURCE_METADATA_PATH
from .types import ProtectedResourceMetadata

Headers = Mapping[str, str]


def get_path(url: str) -> str:
    path = urlparse(url).path
    return "" if path == "/" else path


def _forwarded_scheme(headers: Optional[Headers], default: str) -> str:
    if not headers:
        return default
    lowered = {k.lower(): v for k, v in headers.items()}
    for key in ("x-forwarded-proto", "x-forwarded-protocol"):
        value = lowered.get(key)
        if value:
            return "https" if value.split(",")[0].strip() == "https" else "http"
    return default


def get_resource(config: ServerConfig, request_url: str, headers: Optional[Headers] = None) -> str:
    """Return the canonical resource URL a request is for.

    A configured ``resource`` always wins. Otherwise the URL is derived from
    the request, forced to https unless ``allow_http`` is set, with any
    protected-resource-metadata prefix and trailing slash removed.
    """
    if config.resource:
        return config.resource

    parsed = urlparse(request_url)
    scheme = _forwarded_scheme(headers, parsed.scheme)
    if not config.allow_http:
        scheme = "https"

    path = get_path(request_url).replace(PROTECTED_RESOURCE_METADATA_PATH, "", 1).rstrip("/")
    return f"{scheme}://{parsed.netloc}{path}"


def resource_metadata_url(resource_url: str) -> str:
    parsed = urlparse(resource_url)
    return f"{parsed.scheme}://{parsed.netloc}{PROTECTED_RESOURCE_METADATA_PATH}{parsed.path}"


def _is_protected_resource_metadata_request(
    config: ServerConfig, request_url: str, headers: Optional[Headers]
) -> bool:
    if not get_path(request_url).startswith(PROTECTED_RESOURCE_METADATA_PATH):
        return False
    resource_path = get_path(get_resource(config, request_url, headers))
    mount_path = config.mount_path.rstrip("/")
    return resource_path in (mount_path, f"{mount_path}/message")


def get_protected_resource_metadata(
    config: ServerConfig, request_url: str, headers: Optional[Headers] = None
) -> ProtectedResourceMetadata | None:
    if not _is_protected_resource_metadata_request(config, request_url, headers):
        return None
    resource = get_resource(config, request_url, headers)
    return ProtectedResourceMetadata(
        resource=resource,
        resource_name=config.payee_name or resource,
        authorization_servers=[config.server],
    )


def is_authorization_server_metadata_request(request_url: str) -> bool:
    return get_path(request_url).rstrip("/") == AUTHORIZATION_SERVER_METADATA_PATH
