# billing/stripe_client.py
"""
Stripe SDK configuration for checkout.

STRIPE_SECRET_KEY is read on every call, so rotating the key or clearing
it to switch checkout off takes effect without a restart.

The mode comes from the key itself:
- sk_live_ / rk_live_: live
- any other sk_ / rk_ key: test
- anything else: not a usable key, billing disabled
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Optional

import stripe

_logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2024-06-20"

_KEY_PREFIXES = ("sk_", "rk_")
_LIVE_KEY_PREFIXES = ("sk_live_", "rk_live_")
_MIN_KEY_LENGTH = 11


class StripeMode(str, Enum):
    """Which Stripe environment the configured key talks to."""
    TEST = "test"
    LIVE = "live"


def get_stripe_key() -> str:
    """Stripe secret key from environment."""
    return os.environ.get("STRIPE_SECRET_KEY", "").strip()


def key_mode(key: str) -> Optional[StripeMode]:
    """Mode for a secret or restricted key; None if it is not one."""
    if len(key) < _MIN_KEY_LENGTH or not key.startswith(_KEY_PREFIXES):
        return None
    if key.startswith(_LIVE_KEY_PREFIXES):
        return StripeMode.LIVE
    return StripeMode.TEST


def current_mode() -> Optional[StripeMode]:
    """Mode of the configured key, or None when billing is off."""
    return key_mode(get_stripe_key())


def is_billing_enabled() -> bool:
    """Checkout is available only with a usable Stripe key."""
    return current_mode() is not None


def get_stripe():
    """
    Stripe module configured with the current key.

    Raises:
        RuntimeError: If no usable key is configured
    """
    key = get_stripe_key()
    mode = key_mode(key)
    if mode is None:
        raise RuntimeError("Stripe not configured. Check STRIPE_SECRET_KEY.")

    if stripe.api_key != key:
        stripe.api_key = key
        stripe.api_version = STRIPE_API_VERSION
        _logger.info(f"Stripe configured in {mode.value} mode")

    return stripe
