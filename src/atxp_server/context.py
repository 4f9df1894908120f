"""Request-scoped authentication state.

Handlers run deep inside a host framework, so they cannot be handed the
token check explicitly. The state lives in a :class:`contextvars.ContextVar`:
every asyncio task and every thread gets its own binding, so requests served
concurrently in one process never see each other's context.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional

from .config import ServerConfig
from .types import TokenCheck

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    config: ServerConfig
    resource: str
    token_check: Optional[TokenCheck] = None

    @property
    def account_id(self) -> Optional[str]:
        if self.token_check is None or self.token_check.data is None:
            return None
        return self.token_check.data.sub

    @property
    def token(self) -> Optional[str]:
        return self.token_check.token if self.token_check is not None else None


_current: ContextVar[Optional[RequestContext]] = ContextVar("atxp_request_context", default=None)


@contextmanager
def atxp_context(
    config: ServerConfig,
    resource: str,
    token_check: Optional[TokenCheck],
) -> Iterator[RequestContext]:
    """Bind a :class:`RequestContext` for the duration of the ``with`` block."""
    ctx = RequestContext(config=config, resource=resource, token_check=token_check)
    logger.debug("Setting user context to %s", ctx.account_id)
    reset_token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(reset_token)


def current_context() -> Optional[RequestContext]:
    return _current.get()


def get_atxp_config() -> Optional[ServerConfig]:
    ctx = _current.get()
    return ctx.config if ctx is not None else None


def get_atxp_resource() -> Optional[str]:
    ctx = _current.get()
    return ctx.resource if ctx is not None else None


def atxp_account_id() -> Optional[str]:
    """The authenticated account (token ``sub``) for the current request."""
    ctx = _current.get()
    return ctx.account_id if ctx is not None else None


def atxp_token() -> Optional[str]:
    ctx = _current.get()
    return ctx.token if ctx is not None else None
