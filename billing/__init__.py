# billing/__init__.py
"""
Billing module.

Provides:
- Tier/interval -> Stripe price ID mapping
- Stripe Checkout session creation
- Founder seat availability and paid-checkout confirmation
"""

from billing.products import BillingInterval, price_id_for, tier_from_price_id
from billing.founder import get_founder_availability, record_founder_purchase
from billing.service import confirm_founder_checkout, create_checkout_session

__all__ = [
    "BillingInterval",
    "price_id_for",
    "tier_from_price_id",
    "get_founder_availability",
    "record_founder_purchase",
    "create_checkout_session",
    "confirm_founder_checkout",
]
