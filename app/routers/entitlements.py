"""
Entitlement API endpoints.

Features, usage, capability/quota checks and render clamping for the
calling account. Usage storage faults fail closed with 503.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.dependencies import AccountContext, get_account, get_catalog, get_enforcer
from app.schemas.entitlements import ClampRequest, ClampResponse, OperationRequest
from billing.products import LIST_PRICES_USD
from entitlements.catalog import TierCatalog
from entitlements.clamp import (
    allowed_preset_or_default,
    clamp_auto_zoom,
    clamp_quality,
    normalize_quality,
    quality_to_height,
)
from entitlements.enforcer import QuotaEnforcer, Reason, UpgradeDecision
from entitlements.ledger import InvalidUsageDelta, LedgerUnavailableError
from entitlements.tiers import LADDER, Tier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["entitlements"])

_REASON_MESSAGES = {
    Reason.QUALITY_ABOVE_CEILING: "Upgrade to {plan} to export at this quality.",
    Reason.PRESET_NOT_INCLUDED: "Upgrade to {plan} to unlock this subtitle style.",
    Reason.AUTO_ZOOM_ABOVE_CEILING: "Upgrade to {plan} for stronger auto zoom.",
    Reason.ADVANCED_EFFECT_LOCKED: "Upgrade to {plan} to unlock advanced effects.",
    Reason.RENDER_QUOTA_EXHAUSTED: "You have used all your renders. Upgrade to {plan} for more.",
    Reason.MINUTES_QUOTA_EXHAUSTED: "You have used all your minutes. Upgrade to {plan} for more.",
}


def upgrade_message(decision: UpgradeDecision) -> str:
    """Human-readable message for a refused decision."""
    if decision.allowed:
        return ""
    if not decision.upgradable:
        if decision.reason in (Reason.RENDER_QUOTA_EXHAUSTED, Reason.MINUTES_QUOTA_EXHAUSTED):
            return f"Your {decision.period.value} limit is reached. It resets next period."
        return "This option is not available on any plan."
    plan = decision.required_tier.value.capitalize()
    return _REASON_MESSAGES[decision.reason].format(plan=plan)


def _ledger_unavailable(account: AccountContext, exc: LedgerUnavailableError) -> HTTPException:
    logger.error(f"Usage ledger unavailable for {account.account_id}; denying: {exc}")
    return HTTPException(status_code=503, detail="usage_unavailable")


def _plan_summary(catalog: TierCatalog, enforcer: QuotaEnforcer, tier: Tier) -> dict:
    caps = catalog.capabilities_for(tier)
    return {
        "tier": tier.value,
        "name": caps.name,
        "description": caps.description,
        "priceMonthly": LIST_PRICES_USD[tier],
        "features": enforcer.resolver.resolve(tier).to_dict(),
    }


@router.get("/api/plans")
def list_plans(
    catalog: TierCatalog = Depends(get_catalog),
    enforcer: QuotaEnforcer = Depends(get_enforcer),
):
    """Catalog summary for the pricing page. Founder is listed separately."""
    return {
        "catalogVersion": catalog.version,
        "plans": [_plan_summary(catalog, enforcer, tier) for tier in LADDER],
        "founder": _plan_summary(catalog, enforcer, Tier.FOUNDER),
    }


@router.get("/api/me/features")
def get_my_features(
    account: AccountContext = Depends(get_account),
    enforcer: QuotaEnforcer = Depends(get_enforcer),
):
    """Resolved features for the calling account."""
    features = enforcer.resolver.resolve(account.tier)
    return {
        "plan": account.tier.value,
        "features": features.to_dict(),
        "subtitlePresets": [p.to_dict() for p in enforcer.catalog.presets],
    }


@router.get("/api/me/usage")
def get_my_usage(
    account: AccountContext = Depends(get_account),
    enforcer: QuotaEnforcer = Depends(get_enforcer),
):
    """Usage and limits for the calling account."""
    try:
        summary = enforcer.usage_summary(account.account_id, account.tier)
    except LedgerUnavailableError as e:
        raise _ledger_unavailable(account, e)

    return {"plan": account.tier.value, **summary.to_dict()}


@router.post("/api/entitlements/check")
def check_operation(
    request: OperationRequest,
    account: AccountContext = Depends(get_account),
    enforcer: QuotaEnforcer = Depends(get_enforcer),
):
    """Decide whether an operation is allowed without recording usage."""
    try:
        operation = request.to_operation()
        decision = enforcer.check(account.account_id, account.tier, operation)
    except InvalidUsageDelta as e:
        raise HTTPException(status_code=422, detail=str(e))
    except LedgerUnavailableError as e:
        raise _ledger_unavailable(account, e)

    return {**decision.to_dict(), "message": upgrade_message(decision)}


@router.post("/api/entitlements/consume")
def consume_operation(
    request: OperationRequest,
    account: AccountContext = Depends(get_account),
    enforcer: QuotaEnforcer = Depends(get_enforcer),
):
    """
    Decide and record usage in one step.

    Refusals return 402 with code PLAN_LIMIT_EXCEEDED so the client opens
    the upgrade prompt for `requiredPlan`.
    """
    try:
        operation = request.to_operation()
        decision = enforcer.consume(account.account_id, account.tier, operation)
    except InvalidUsageDelta as e:
        raise HTTPException(status_code=422, detail=str(e))
    except LedgerUnavailableError as e:
        raise _ledger_unavailable(account, e)

    if not decision.allowed:
        return JSONResponse(
            status_code=402,
            content={
                "code": "PLAN_LIMIT_EXCEEDED",
                "message": upgrade_message(decision),
                **decision.to_dict(),
            },
        )
    return decision.to_dict()


@router.post("/api/render/clamp", response_model=ClampResponse)
def clamp_render_settings(
    request: ClampRequest,
    account: AccountContext = Depends(get_account),
    catalog: TierCatalog = Depends(get_catalog),
):
    """Downgrade render settings to what the plan permits, without rejecting."""
    requested_quality = normalize_quality(request.quality)
    quality = clamp_quality(requested_quality, account.tier, catalog)
    preset_id = allowed_preset_or_default(request.preset_id, account.tier, catalog)

    auto_zoom = None
    if request.auto_zoom is not None:
        auto_zoom = clamp_auto_zoom(request.auto_zoom, account.tier, catalog)

    adjusted = (
        quality != requested_quality
        or (request.preset_id is not None and preset_id != request.preset_id)
        or (auto_zoom is not None and auto_zoom != request.auto_zoom)
    )

    return ClampResponse(
        quality=quality.value,
        height=quality_to_height(quality),
        preset_id=preset_id,
        auto_zoom=auto_zoom,
        adjusted=adjusted,
    )
