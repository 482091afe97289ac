"""
Billing API endpoints: price lookup, checkout initiation and founder seats.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.dependencies import AccountContext, get_account
from app.schemas.entitlements import (
    CheckoutRequest,
    CheckoutResponse,
    FounderConfirmRequest,
    FounderConfirmResponse,
    PriceResponse,
)
from billing.founder import get_founder_availability
from billing.products import parse_interval, price_id_for
from billing.service import (
    BillingDisabledError,
    CheckoutError,
    CheckoutNotConfirmedError,
    CheckoutUnavailableError,
    confirm_founder_checkout,
    create_checkout_session,
)
from entitlements.tiers import parse_tier

_logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])


def _request_id(raw_request: Request) -> str:
    return getattr(raw_request.state, "request_id", None) or "unknown"


def _error(status_code: int, request_id: str, error: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"request_id": request_id, "error": error, "detail": detail},
    )


@router.get("/api/billing/price", response_model=PriceResponse)
def get_price(tier: str, interval: str = "monthly"):
    """
    Stripe price ID for a tier and interval.

    Unknown or unconfigured combinations answer with an empty price_id
    and available=false rather than an error.
    """
    parsed_interval = parse_interval(interval)
    price_id = price_id_for(tier, interval)
    return PriceResponse(
        tier=parse_tier(tier).value,
        interval=parsed_interval.value if parsed_interval else interval,
        price_id=price_id,
        available=bool(price_id),
    )


@router.post("/api/billing/checkout", response_model=CheckoutResponse)
def create_checkout(
    request: CheckoutRequest,
    raw_request: Request,
    account: AccountContext = Depends(get_account),
):
    """Create a Stripe Checkout session for the chosen plan."""
    request_id = _request_id(raw_request)

    try:
        result = create_checkout_session(
            account_id=account.account_id,
            email=request.email,
            tier=request.tier,
            interval=request.interval,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            current_tier=account.tier,
            customer_id=request.customer_id,
        )
    except BillingDisabledError as e:
        return _error(503, request_id, "billing_disabled", str(e))
    except CheckoutUnavailableError as e:
        return _error(409, request_id, "plan_unavailable", str(e))
    except CheckoutError as e:
        _logger.error(f"Checkout error: {e}", extra={"request_id": request_id})
        return _error(502, request_id, "checkout_failed", str(e))

    return CheckoutResponse(request_id=request_id, **result)


@router.post("/api/billing/founder/confirm", response_model=FounderConfirmResponse)
def confirm_founder(
    request: FounderConfirmRequest,
    raw_request: Request,
    account: AccountContext = Depends(get_account),
):
    """Record the founder seat for a paid checkout session."""
    request_id = _request_id(raw_request)

    try:
        recorded, availability = confirm_founder_checkout(account.account_id, request.session_id)
    except BillingDisabledError as e:
        return _error(503, request_id, "billing_disabled", str(e))
    except CheckoutNotConfirmedError as e:
        return _error(409, request_id, "not_confirmed", str(e))
    except CheckoutError as e:
        _logger.error(f"Founder confirmation error: {e}", extra={"request_id": request_id})
        return _error(502, request_id, "checkout_failed", str(e))

    return FounderConfirmResponse(
        request_id=request_id,
        recorded=recorded,
        founder=availability.to_dict(),
    )


@router.get("/api/public/founder")
def get_founder_status():
    """Founder seats left for sale."""
    return get_founder_availability().to_dict()
