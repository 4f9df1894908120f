"""OAuth client used by the resource server to talk to its authorization server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from .constants import AUTHORIZATION_SERVER_METADATA_PATH, DEFAULT_TIMEOUT_SECONDS
from .errors import IntrospectionError, IntrospectionTransportError
from .types import TokenData

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str


class OAuthResourceClient:
    """Introspects bearer tokens against an authorization server.

    Client credentials for the introspection endpoint are either supplied up
    front or obtained once per authorization server through dynamic client
    registration (RFC 7591) and kept for the lifetime of the client.
    """

    def __init__(
        self,
        *,
        credentials: ClientCredentials | None = None,
        client_name: str = "Token Introspection Client",
        allow_insecure_requests: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Any = None,
    ) -> None:
        self._credentials = credentials
        self._client_name = client_name
        self._allow_insecure_requests = allow_insecure_requests
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._metadata: Dict[str, Dict[str, Any]] = {}
        self._registered: Dict[str, ClientCredentials] = {}
        self._registration_lock = asyncio.Lock()

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            import httpx

            self._http_client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> OAuthResourceClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _check_url(self, url: str) -> str:
        if urlparse(url).scheme != "https" and not self._allow_insecure_requests:
            raise IntrospectionError(f"Refusing insecure request to {url}")
        return url

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        import httpx

        client = self._get_async_client()
        try:
            return await client.request(method, self._check_url(url), **kwargs)
        except httpx.TimeoutException as exc:
            raise IntrospectionTransportError(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise IntrospectionTransportError(f"{method} {url} failed: {exc}") from exc

    async def authorization_server_metadata(self, server: str) -> Dict[str, Any]:
        """Fetch (and cache) the authorization server's RFC 8414 metadata."""
        server = server.rstrip("/")
        if server in self._metadata:
            return self._metadata[server]

        url = f"{server}{AUTHORIZATION_SERVER_METADATA_PATH}"
        response = await self._send("GET", url, headers={"Accept": "application/json"})
        if response.status_code != 200:
            raise IntrospectionError(
                f"Authorization server metadata failed ({response.status_code}): {response.text}"
            )
        try:
            metadata = response.json()
        except ValueError as exc:
            raise IntrospectionError(f"Authorization server metadata invalid JSON: {exc}") from exc
        if not isinstance(metadata, dict):
            raise IntrospectionError("Authorization server metadata must be a JSON object")

        self._metadata[server] = metadata
        return metadata

    async def client_credentials(self, server: str) -> ClientCredentials:
        if self._credentials is not None:
            return self._credentials

        server = server.rstrip("/")
        async with self._registration_lock:
            if server in self._registered:
                return self._registered[server]
            credentials = await self._register_client(server)
            self._registered[server] = credentials
            return credentials

    async def _register_client(self, server: str) -> ClientCredentials:
        metadata = await self.authorization_server_metadata(server)
        endpoint = metadata.get("registration_endpoint")
        if not endpoint:
            raise IntrospectionError(
                f"Authorization server {server} does not support dynamic client registration"
            )

        logger.info("Registering introspection client %r with %s", self._client_name, server)
        response = await self._send(
            "POST",
            endpoint,
            json={
                "client_name": self._client_name,
                "grant_types": ["client_credentials"],
                "token_endpoint_auth_method": "client_secret_basic",
                "redirect_uris": [],
            },
        )
        if response.status_code not in (200, 201):
            raise IntrospectionError(
                f"Client registration failed ({response.status_code}): {response.text}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise IntrospectionError(f"Client registration returned invalid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise IntrospectionError("Client registration response must be a JSON object")
        client_id = body.get("client_id")
        client_secret = body.get("client_secret")
        if not client_id or not client_secret:
            raise IntrospectionError("Client registration response missing client credentials")
        return ClientCredentials(client_id=str(client_id), client_secret=str(client_secret))

    async def introspect_token(
        self,
        server: str,
        token: str,
        additional_parameters: Optional[Dict[str, str]] = None,
    ) -> TokenData:
        """Introspect ``token`` (RFC 7662).

        Raises:
            IntrospectionTransportError: If the authorization server is unreachable.
            IntrospectionError: If the response is not a valid introspection result.
        """
        metadata = await self.authorization_server_metadata(server)
        endpoint = metadata.get("introspection_endpoint")
        if not endpoint:
            raise IntrospectionError(f"Authorization server {server} has no introspection endpoint")

        credentials = await self.client_credentials(server)
        form = {"token": token, **(additional_parameters or {})}
        response = await self._send(
            "POST",
            endpoint,
            data=form,
            auth=(credentials.client_id, credentials.client_secret),
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            raise IntrospectionError(
                f"Token introspection failed with status {response.status_code}: {response.text}"
            )

        try:
            return TokenData.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise IntrospectionError(f"Invalid introspection response: {exc}") from exc
