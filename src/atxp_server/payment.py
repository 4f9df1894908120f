"""Charge the current request's user, or tell them how to pay."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, Tuple

from ._runner import run_async
from .context import RequestContext, current_context
from .destinations import resolve_destinations
from .errors import MissingAuthenticationError, PaymentRequiredError
from .types import Charge, PaymentRequestOption

logger = logging.getLogger(__name__)

ExistingPaymentIdLookup = Callable[[], Awaitable[Optional[str]]]
SyncExistingPaymentIdLookup = Callable[[], Optional[str]]


def _payment_options(ctx: RequestContext, amount: Decimal) -> List[PaymentRequestOption]:
    return [
        PaymentRequestOption(
            network=option.network,
            currency=option.currency,
            address=option.address,
            amount=amount,
        )
        for option in ctx.config.destinations
    ]


async def _build_charge(ctx: RequestContext, source: str, amount: Decimal) -> Charge:
    destinations = await resolve_destinations(
        ctx.config.destination_registry, _payment_options(ctx, amount)
    )
    return Charge(source=source, destinations=destinations, payee_name=ctx.config.payee_name)


def _authenticated_user(ctx: Optional[RequestContext]) -> Tuple[RequestContext, str]:
    if ctx is None:
        raise MissingAuthenticationError("No ATXP request context; is the middleware installed?")
    user = ctx.account_id
    if not user:
        logger.error("No user found")
        raise MissingAuthenticationError("No user found")
    return ctx, user


def _payment_amount(ctx: RequestContext, price: Decimal) -> Decimal:
    minimum = ctx.config.minimum_payment
    if minimum is not None and minimum > price:
        return minimum
    return price


async def _charge(ctx: RequestContext, user: str, price: Decimal) -> Tuple[Charge, bool]:
    charge = await _build_charge(ctx, user, price)
    logger.debug(
        "Charging %s to %d destinations for source %s", price, len(charge.destinations), user
    )
    charge_response = await ctx.config.payment_server.charge(charge)
    if charge_response.success:
        logger.info("Charged %s for source %s", price, user)
    return charge, charge_response.success


async def _create_payment_request(
    ctx: RequestContext, user: str, charge: Charge, price: Decimal
) -> PaymentRequiredError:
    payment_amount = _payment_amount(ctx, price)
    if payment_amount != price:
        charge = await _build_charge(ctx, user, payment_amount)
    payment_request_id = await ctx.config.payment_server.create_payment_request(charge)
    logger.info("Created payment request %s", payment_request_id)
    return PaymentRequiredError(ctx.config.server, payment_request_id, payment_amount)


def _existing_payment(
    ctx: RequestContext, price: Decimal, existing_payment_id: Optional[str]
) -> Optional[PaymentRequiredError]:
    if not existing_payment_id:
        return None
    logger.info("Found existing payment ID %s", existing_payment_id)
    return PaymentRequiredError(ctx.config.server, existing_payment_id, _payment_amount(ctx, price))


async def require_payment(
    price: Decimal | str | int,
    get_existing_payment_id: Optional[ExistingPaymentIdLookup] = None,
) -> None:
    """Charge the authenticated user ``price`` before a protected operation runs.

    Makes exactly one charge attempt. Returns normally when the charge goes
    through.

    Args:
        price: Amount in the configured currency.
        get_existing_payment_id: Optional async lookup returning the id of a
            payment request already issued for this logical operation. When it
            returns an id, no new payment request is created.

    Raises:
        PaymentRequiredError: The user must pay out of band and retry the
            same operation referencing ``payment_request_id``.
        MissingAuthenticationError: Called outside an authenticated request.
        PaymentServerError: The payment server misbehaved.
    """
    ctx, user = _authenticated_user(current_context())
    price = Decimal(str(price))

    charge, charged = await _charge(ctx, user, price)
    if charged:
        return

    if get_existing_payment_id is not None:
        existing = _existing_payment(ctx, price, await get_existing_payment_id())
        if existing is not None:
            raise existing

    raise await _create_payment_request(ctx, user, charge, price)


def require_payment_sync(
    price: Decimal | str | int,
    get_existing_payment_id: Optional[SyncExistingPaymentIdLookup] = None,
) -> None:
    """Blocking variant of :func:`require_payment` for WSGI handlers.

    The network calls run on a shared background event loop. The context and
    ``get_existing_payment_id`` are both evaluated on the calling thread, so
    the lookup can use the host framework's request state.
    """
    ctx, user = _authenticated_user(current_context())
    price = Decimal(str(price))

    charge, charged = run_async(_charge(ctx, user, price))
    if charged:
        return

    if get_existing_payment_id is not None:
        existing = _existing_payment(ctx, price, get_existing_payment_id())
        if existing is not None:
            raise existing

    raise run_async(_create_payment_request(ctx, user, charge, price))
