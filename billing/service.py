# billing/service.py
"""
Checkout initiation and founder confirmation.

Turns a (tier, interval) choice into a Stripe Checkout session using the
price mapper, and confirms paid founder checkouts so the seat count moves
as soon as the buyer returns. Subscription webhooks live outside this
service.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Union

from stripe import StripeError

from billing.founder import (
    FounderAvailability,
    get_founder_availability,
    has_founder_seat,
    record_founder_purchase,
)
from billing.products import BillingInterval, get_plan_for_tier, parse_interval
from billing.stripe_client import StripeMode, current_mode, get_stripe, is_billing_enabled
from entitlements.tiers import Tier, parse_tier, tier_satisfies

_logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base billing error."""
    pass


class BillingDisabledError(BillingError):
    """Billing is not enabled."""
    pass


class CheckoutUnavailableError(BillingError):
    """The requested plan has no purchasable price."""
    pass


class CheckoutError(BillingError):
    """Checkout session creation failed."""
    pass


class CheckoutNotConfirmedError(BillingError):
    """The session is not a paid founder checkout for this account."""
    pass


def create_checkout_session(
    account_id: str,
    email: str,
    tier: Union[str, Tier],
    interval: Union[str, BillingInterval],
    success_url: str,
    cancel_url: str,
    current_tier: Optional[Tier] = None,
    customer_id: Optional[str] = None,
) -> dict:
    """
    Create a Stripe Checkout session.

    Subscriptions use mode="subscription"; founder seats are one-time
    payments (mode="payment").

    Args:
        account_id: Internal account ID (stored in metadata)
        email: Customer email, used when no Stripe customer exists yet
        tier: Tier to buy
        interval: monthly | annual | lifetime
        success_url: URL to redirect on success
        cancel_url: URL to redirect on cancel
        current_tier: The account's tier, to refuse no-op purchases
        customer_id: Existing Stripe customer, if any

    Returns:
        Dict with session_id and checkout_url

    Raises:
        BillingDisabledError: If billing is not enabled
        CheckoutUnavailableError: If the plan has no price or is sold out
        CheckoutError: If session creation fails
    """
    if not is_billing_enabled():
        raise BillingDisabledError("Billing is not enabled. Check STRIPE_SECRET_KEY.")

    tier = parse_tier(tier)
    plan = get_plan_for_tier(tier, interval)
    if plan is None:
        parsed = parse_interval(interval)
        label = parsed.value if parsed else str(interval)
        raise CheckoutUnavailableError(f"No price configured for {tier.value} ({label})")

    if current_tier is Tier.FOUNDER:
        raise CheckoutUnavailableError("Founder accounts already have lifetime access")
    if current_tier is not None and tier is not Tier.FOUNDER and tier_satisfies(current_tier, tier):
        raise CheckoutUnavailableError(f"Account is already on {current_tier.value}")

    if plan.one_time:
        if has_founder_seat(account_id):
            raise CheckoutUnavailableError("Account already owns a founder seat")
        if get_founder_availability().sold_out:
            raise CheckoutUnavailableError("Founder seats are sold out")

    session_params = {
        "mode": "payment" if plan.one_time else "subscription",
        "line_items": [
            {
                "price": plan.price_id,
                "quantity": 1,
            }
        ],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": account_id,
        "metadata": {
            "account_id": account_id,
            "tier": tier.value,
            "interval": plan.interval.value,
        },
    }
    if not plan.one_time:
        session_params["subscription_data"] = {"metadata": {"account_id": account_id}}

    if customer_id:
        session_params["customer"] = customer_id
    else:
        session_params["customer_email"] = email

    client = get_stripe()
    try:
        session = client.checkout.Session.create(**session_params)
    except StripeError as e:
        _logger.error(f"Checkout session creation failed: {e}")
        raise CheckoutError(f"Failed to create checkout session: {e}") from e

    _logger.info(
        f"Created checkout session for account {account_id}",
        extra={"session_id": session.id, "tier": tier.value, "interval": plan.interval.value},
    )

    return {
        "session_id": session.id,
        "checkout_url": session.url,
    }


def confirm_founder_checkout(account_id: str, session_id: str) -> Tuple[bool, FounderAvailability]:
    """
    Record a founder seat once its checkout session is paid.

    Called when the buyer lands on the success URL. The session is read
    back from Stripe and must belong to this account, be a founder
    purchase, be paid, and come from the same mode (test or live) as the
    configured key. Confirming the same session twice is a no-op.

    Returns:
        (created, availability): whether this call recorded the seat, and
        founder availability afterwards

    Raises:
        BillingDisabledError: If billing is not enabled
        CheckoutError: If the session cannot be retrieved
        CheckoutNotConfirmedError: If the session does not grant a seat
    """
    if not is_billing_enabled():
        raise BillingDisabledError("Billing is not enabled. Check STRIPE_SECRET_KEY.")

    client = get_stripe()
    try:
        session = client.checkout.Session.retrieve(session_id)
    except StripeError as e:
        _logger.error(f"Checkout session lookup failed: {e}")
        raise CheckoutError(f"Failed to retrieve checkout session: {e}") from e

    metadata = session.metadata or {}
    if metadata.get("account_id") != account_id:
        raise CheckoutNotConfirmedError("Checkout session belongs to another account")
    if metadata.get("tier") != Tier.FOUNDER.value:
        raise CheckoutNotConfirmedError("Checkout session is not a founder purchase")
    if session.payment_status != "paid":
        raise CheckoutNotConfirmedError(f"Checkout session is {session.payment_status}, not paid")
    if bool(session.livemode) != (current_mode() is StripeMode.LIVE):
        raise CheckoutNotConfirmedError("Checkout session is from a different Stripe mode")

    created = record_founder_purchase(account_id)
    availability = get_founder_availability()
    if created and availability.purchased_count > availability.max_purchases:
        _logger.warning(
            f"Founder seats oversold: {availability.purchased_count}/{availability.max_purchases}",
            extra={"session_id": session_id},
        )

    _logger.info(
        f"Confirmed founder checkout for account {account_id}",
        extra={"session_id": session_id, "created": created},
    )
    return created, availability
