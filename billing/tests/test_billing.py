# billing/tests/test_billing.py
"""
Tests for billing module.

Tests:
- Price mapper (tier + interval -> Stripe price ID)
- Checkout session creation (mocked Stripe)
- Founder seat availability and confirmation
"""

from __future__ import annotations

import pytest
from unittest.mock import patch, MagicMock

from stripe import StripeError

from billing.products import (
    BillingInterval,
    PRICE_ENV_VARS,
    get_plan_for_tier,
    parse_interval,
    price_id_for,
    tier_from_price_id,
)
from entitlements.tiers import Tier

PRICES = {
    "STRIPE_PRICE_ID_STARTER": "price_starter_m",
    "STRIPE_PRICE_ID_CREATOR": "price_creator_m",
    "STRIPE_PRICE_ID_STUDIO": "price_studio_m",
    "STRIPE_PRICE_ID_STARTER_ANNUAL": "price_starter_y",
    "STRIPE_PRICE_ID_CREATOR_ANNUAL": "price_creator_y",
    "STRIPE_PRICE_ID_STUDIO_ANNUAL": "price_studio_y",
    "STRIPE_PRICE_ID_FOUNDER": "price_founder",
}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_database():
    """Reset database before each test."""
    from persistence.db import reset_db, init_db

    reset_db()
    init_db()
    yield
    reset_db()


@pytest.fixture
def prices(monkeypatch):
    """Configure every Stripe price ID."""
    for name, value in PRICES.items():
        monkeypatch.setenv(name, value)
    return PRICES


@pytest.fixture
def no_prices(monkeypatch):
    """Clear every Stripe price ID."""
    for name in set(PRICE_ENV_VARS.values()):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_stripe(monkeypatch):
    """Billing enabled with a mocked Stripe module and no live key."""
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    stripe_module = MagicMock()
    stripe_module.checkout.Session.create.return_value = MagicMock(
        id="cs_test_123",
        url="https://checkout.stripe.com/c/pay/cs_test_123",
    )
    with patch("billing.service.is_billing_enabled", return_value=True), \
            patch("billing.service.get_stripe", return_value=stripe_module):
        yield stripe_module


# =============================================================================
# Price Mapper Tests
# =============================================================================


class TestPriceMapper:
    """Tests for price ID lookup."""

    def test_monthly_prices(self, prices):
        assert price_id_for("starter", "monthly") == "price_starter_m"
        assert price_id_for(Tier.CREATOR) == "price_creator_m"
        assert price_id_for("studio", BillingInterval.MONTHLY) == "price_studio_m"

    def test_annual_prices(self, prices):
        assert price_id_for("starter", "annual") == "price_starter_y"
        assert price_id_for("studio", "ANNUAL") == "price_studio_y"

    def test_free_is_never_priced(self, prices):
        assert price_id_for("free", "monthly") == ""
        assert price_id_for("free", "annual") == ""

    def test_founder_is_one_time(self, prices):
        assert price_id_for("founder", "monthly") == "price_founder"
        assert price_id_for("founder", "lifetime") == "price_founder"
        assert price_id_for("founder", "annual") == ""

    def test_unknown_interval(self, prices):
        assert price_id_for("starter", "weekly") == ""

    def test_lifetime_only_for_founder(self, prices):
        assert price_id_for("studio", "lifetime") == ""

    def test_unconfigured_price(self, no_prices):
        assert price_id_for("starter", "monthly") == ""
        assert get_plan_for_tier("starter") is None

    def test_parse_interval(self):
        assert parse_interval(" Annual ") is BillingInterval.ANNUAL
        assert parse_interval(None) is None
        assert parse_interval("quarterly") is None


class TestPlans:
    """Tests for plan configuration."""

    def test_monthly_plan(self, prices):
        plan = get_plan_for_tier("creator", "monthly")
        assert plan.tier is Tier.CREATOR
        assert plan.price_id == "price_creator_m"
        assert plan.amount_cents == 2900
        assert plan.currency == "usd"
        assert not plan.one_time

    def test_annual_plan(self, prices):
        plan = get_plan_for_tier("starter", "annual")
        assert plan.interval is BillingInterval.ANNUAL
        assert plan.amount_cents == 9 * 12 * 100

    def test_founder_plan_is_lifetime(self, prices):
        plan = get_plan_for_tier("founder", "monthly")
        assert plan.interval is BillingInterval.LIFETIME
        assert plan.one_time

    def test_tier_from_price_id(self, prices):
        assert tier_from_price_id("price_studio_y") is Tier.STUDIO
        assert tier_from_price_id("price_founder") is Tier.FOUNDER
        assert tier_from_price_id("price_unknown") is None
        assert tier_from_price_id("") is None


# =============================================================================
# Stripe Client Tests
# =============================================================================


class TestStripeClient:
    """Tests for Stripe client configuration."""

    def test_is_billing_enabled_without_key(self, monkeypatch):
        from billing.stripe_client import is_billing_enabled

        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        assert is_billing_enabled() is False

    def test_is_billing_enabled_with_key(self, monkeypatch):
        from billing.stripe_client import is_billing_enabled

        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_1234567890")
        assert is_billing_enabled() is True

    def test_publishable_key_does_not_enable_billing(self, monkeypatch):
        from billing.stripe_client import is_billing_enabled

        monkeypatch.setenv("STRIPE_SECRET_KEY", "pk_live_1234567890")
        assert is_billing_enabled() is False

    @pytest.mark.parametrize("key,mode", [
        ("sk_test_1234567890", "test"),
        ("rk_test_1234567890", "test"),
        ("sk_live_1234567890", "live"),
        ("rk_live_1234567890", "live"),
        ("sk_123", None),
        ("", None),
    ])
    def test_key_mode(self, key, mode):
        from billing.stripe_client import key_mode

        result = key_mode(key)
        assert (result.value if result else None) == mode

    def test_get_stripe_follows_key_rotation(self, monkeypatch):
        from billing.stripe_client import STRIPE_API_VERSION, get_stripe

        monkeypatch.setattr("stripe.api_key", None)
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_first_key")
        assert get_stripe().api_key == "sk_test_first_key"
        assert get_stripe().api_version == STRIPE_API_VERSION

        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_second_key")
        assert get_stripe().api_key == "sk_test_second_key"

    def test_get_stripe_without_key_raises(self, monkeypatch):
        from billing.stripe_client import get_stripe

        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        with pytest.raises(RuntimeError):
            get_stripe()


# =============================================================================
# Checkout Tests
# =============================================================================


class TestCheckout:
    """Tests for checkout session creation."""

    def test_billing_disabled_raises(self, prices):
        from billing.service import create_checkout_session, BillingDisabledError

        with patch("billing.service.is_billing_enabled", return_value=False):
            with pytest.raises(BillingDisabledError):
                create_checkout_session(
                    "acct-1", "a@example.com", "starter", "monthly",
                    "https://app/success", "https://app/cancel",
                )

    def test_subscription_checkout(self, prices, mock_stripe):
        from billing.service import create_checkout_session

        result = create_checkout_session(
            "acct-1", "a@example.com", "creator", "annual",
            "https://app/success", "https://app/cancel",
            current_tier=Tier.STARTER,
        )

        assert result["session_id"] == "cs_test_123"
        assert "checkout.stripe.com" in result["checkout_url"]

        call_kwargs = mock_stripe.checkout.Session.create.call_args[1]
        assert call_kwargs["mode"] == "subscription"
        assert call_kwargs["line_items"][0]["price"] == "price_creator_y"
        assert call_kwargs["client_reference_id"] == "acct-1"
        assert call_kwargs["customer_email"] == "a@example.com"
        assert call_kwargs["metadata"]["tier"] == "creator"

    def test_founder_checkout_is_payment(self, prices, mock_stripe):
        from billing.service import create_checkout_session

        create_checkout_session(
            "acct-1", "a@example.com", "founder", "monthly",
            "https://app/success", "https://app/cancel",
            customer_id="cus_123",
        )

        call_kwargs = mock_stripe.checkout.Session.create.call_args[1]
        assert call_kwargs["mode"] == "payment"
        assert call_kwargs["customer"] == "cus_123"
        assert "subscription_data" not in call_kwargs

    def test_unpriced_plan_unavailable(self, prices, mock_stripe):
        from billing.service import create_checkout_session, CheckoutUnavailableError

        with pytest.raises(CheckoutUnavailableError):
            create_checkout_session(
                "acct-1", "a@example.com", "founder", "annual",
                "https://app/success", "https://app/cancel",
            )
        mock_stripe.checkout.Session.create.assert_not_called()

    def test_no_op_purchase_refused(self, prices, mock_stripe):
        from billing.service import create_checkout_session, CheckoutUnavailableError

        with pytest.raises(CheckoutUnavailableError, match="already on creator"):
            create_checkout_session(
                "acct-1", "a@example.com", "starter", "monthly",
                "https://app/success", "https://app/cancel",
                current_tier=Tier.CREATOR,
            )

    def test_founder_account_refused(self, prices, mock_stripe):
        from billing.service import create_checkout_session, CheckoutUnavailableError

        with pytest.raises(CheckoutUnavailableError):
            create_checkout_session(
                "acct-1", "a@example.com", "studio", "monthly",
                "https://app/success", "https://app/cancel",
                current_tier=Tier.FOUNDER,
            )

    def test_founder_sold_out(self, prices, mock_stripe, monkeypatch):
        from billing.founder import record_founder_purchase
        from billing.service import create_checkout_session, CheckoutUnavailableError

        monkeypatch.setenv("FOUNDER_MAX_PURCHASES", "1")
        record_founder_purchase("acct-0")

        with pytest.raises(CheckoutUnavailableError, match="sold out"):
            create_checkout_session(
                "acct-1", "a@example.com", "founder", "lifetime",
                "https://app/success", "https://app/cancel",
            )

    def test_stripe_error_wrapped(self, prices, mock_stripe):
        from billing.service import create_checkout_session, CheckoutError

        mock_stripe.checkout.Session.create.side_effect = StripeError("card network down")
        with pytest.raises(CheckoutError):
            create_checkout_session(
                "acct-1", "a@example.com", "starter", "monthly",
                "https://app/success", "https://app/cancel",
            )

    def test_second_founder_seat_refused(self, prices, mock_stripe):
        from billing.founder import record_founder_purchase
        from billing.service import create_checkout_session, CheckoutUnavailableError

        record_founder_purchase("acct-1")

        with pytest.raises(CheckoutUnavailableError, match="already owns"):
            create_checkout_session(
                "acct-1", "a@example.com", "founder", "lifetime",
                "https://app/success", "https://app/cancel",
            )
        mock_stripe.checkout.Session.create.assert_not_called()


# =============================================================================
# Founder Confirmation Tests
# =============================================================================


def _founder_session(account_id="acct-1", tier="founder", payment_status="paid", livemode=False):
    return MagicMock(
        metadata={"account_id": account_id, "tier": tier, "interval": "lifetime"},
        payment_status=payment_status,
        livemode=livemode,
    )


class TestFounderConfirmation:
    """Tests for recording founder seats from paid checkouts."""

    def test_paid_session_records_seat(self, mock_stripe, monkeypatch):
        from billing.service import confirm_founder_checkout

        monkeypatch.setenv("FOUNDER_MAX_PURCHASES", "2")
        mock_stripe.checkout.Session.retrieve.return_value = _founder_session()

        created, availability = confirm_founder_checkout("acct-1", "cs_test_123")

        assert created is True
        assert availability.purchased_count == 1
        assert availability.remaining == 1
        mock_stripe.checkout.Session.retrieve.assert_called_once_with("cs_test_123")

    def test_confirming_twice_is_noop(self, mock_stripe):
        from billing.service import confirm_founder_checkout

        mock_stripe.checkout.Session.retrieve.return_value = _founder_session()

        confirm_founder_checkout("acct-1", "cs_test_123")
        created, availability = confirm_founder_checkout("acct-1", "cs_test_123")

        assert created is False
        assert availability.purchased_count == 1

    def test_last_seat_marks_sold_out(self, mock_stripe, monkeypatch):
        from billing.founder import get_founder_availability
        from billing.service import confirm_founder_checkout

        monkeypatch.setenv("FOUNDER_MAX_PURCHASES", "1")
        mock_stripe.checkout.Session.retrieve.return_value = _founder_session()

        confirm_founder_checkout("acct-1", "cs_test_123")

        assert get_founder_availability().sold_out

    @pytest.mark.parametrize("session", [
        _founder_session(account_id="acct-2"),
        _founder_session(tier="studio"),
        _founder_session(payment_status="unpaid"),
        _founder_session(livemode=True),
    ])
    def test_session_not_granting_seat(self, mock_stripe, session):
        from billing.founder import has_founder_seat
        from billing.service import CheckoutNotConfirmedError, confirm_founder_checkout

        mock_stripe.checkout.Session.retrieve.return_value = session

        with pytest.raises(CheckoutNotConfirmedError):
            confirm_founder_checkout("acct-1", "cs_test_123")
        assert not has_founder_seat("acct-1")

    def test_lookup_failure_wrapped(self, mock_stripe):
        from billing.service import CheckoutError, confirm_founder_checkout

        mock_stripe.checkout.Session.retrieve.side_effect = StripeError("timeout")
        with pytest.raises(CheckoutError):
            confirm_founder_checkout("acct-1", "cs_test_123")

    def test_billing_disabled(self):
        from billing.service import BillingDisabledError, confirm_founder_checkout

        with patch("billing.service.is_billing_enabled", return_value=False):
            with pytest.raises(BillingDisabledError):
                confirm_founder_checkout("acct-1", "cs_test_123")


# =============================================================================
# Founder Availability Tests
# =============================================================================


class TestFounderAvailability:
    """Tests for founder seat counting."""

    def test_default_cap(self, monkeypatch):
        from billing.founder import DEFAULT_FOUNDER_MAX_PURCHASES, get_founder_availability

        monkeypatch.delenv("FOUNDER_MAX_PURCHASES", raising=False)
        availability = get_founder_availability()
        assert availability.max_purchases == DEFAULT_FOUNDER_MAX_PURCHASES
        assert availability.remaining == DEFAULT_FOUNDER_MAX_PURCHASES
        assert not availability.sold_out

    def test_purchases_reduce_remaining(self):
        from billing.founder import get_founder_availability, record_founder_purchase

        record_founder_purchase("acct-1")
        record_founder_purchase("acct-1")
        record_founder_purchase("acct-2")

        availability = get_founder_availability(max_purchases=3)
        assert availability.purchased_count == 2
        assert availability.remaining == 1

    def test_invalid_env_uses_default(self, monkeypatch):
        from billing.founder import DEFAULT_FOUNDER_MAX_PURCHASES, get_founder_max_purchases

        monkeypatch.setenv("FOUNDER_MAX_PURCHASES", "lots")
        assert get_founder_max_purchases() == DEFAULT_FOUNDER_MAX_PURCHASES

    def test_to_dict(self):
        from billing.founder import FounderAvailability

        data = FounderAvailability(max_purchases=2, purchased_count=2).to_dict()
        assert data == {"maxPurchases": 2, "purchasedCount": 2, "remaining": 0, "soldOut": True}
