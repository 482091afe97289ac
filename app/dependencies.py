# app/dependencies.py
"""
Engine wiring and request dependencies for the API.

The catalog is built once per process and never reloaded. The enforcer
(and its ledger) can be replaced in tests with set_enforcer().

Account identity and tier arrive from the upstream auth gateway as
X-Account-Id / X-Account-Tier headers. A malformed tier header is
normalized to free, never rejected.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from app.config import LEDGER_BACKEND_MEMORY, AppConfig, load_config
from entitlements.catalog import TierCatalog, build_default_catalog
from entitlements.enforcer import QuotaEnforcer
from entitlements.ledger import InMemoryUsageStore, UsageLedger, UsageStore
from entitlements.tiers import Tier, parse_tier

_logger = logging.getLogger(__name__)

_lock = threading.Lock()
_catalog: Optional[TierCatalog] = None
_enforcer: Optional[QuotaEnforcer] = None


@dataclass(frozen=True)
class AccountContext:
    """Caller identity as provided by the auth gateway."""
    account_id: str
    tier: Tier


def get_account(
    x_account_id: Optional[str] = Header(default=None),
    x_account_tier: Optional[str] = Header(default=None),
) -> AccountContext:
    """Resolve the calling account from gateway headers."""
    if not x_account_id:
        raise HTTPException(status_code=401, detail="auth_required")
    return AccountContext(account_id=x_account_id, tier=parse_tier(x_account_tier))


def get_catalog() -> TierCatalog:
    """Process-wide catalog, built on first use."""
    global _catalog
    with _lock:
        if _catalog is None:
            _catalog = build_default_catalog()
            _logger.info(f"Loaded tier catalog {_catalog.version}")
        return _catalog


def _build_store(config: AppConfig) -> UsageStore:
    if config.ledger_backend == LEDGER_BACKEND_MEMORY:
        _logger.warning("Using in-memory usage ledger; counters are lost on restart")
        return InMemoryUsageStore()

    from persistence.usage import SqliteUsageStore
    return SqliteUsageStore()


def build_enforcer(config: AppConfig) -> QuotaEnforcer:
    """Build an enforcer over the configured ledger backend."""
    ledger = UsageLedger(_build_store(config))
    return QuotaEnforcer(get_catalog(), ledger)


def get_enforcer() -> QuotaEnforcer:
    """Process-wide enforcer, built on first use."""
    global _enforcer
    if _enforcer is None:
        enforcer = build_enforcer(load_config(fail_fast=False))
        with _lock:
            if _enforcer is None:
                _enforcer = enforcer
    return _enforcer


def set_enforcer(enforcer: Optional[QuotaEnforcer]) -> None:
    """Set the process-wide enforcer (for testing)."""
    global _enforcer
    with _lock:
        _enforcer = enforcer
