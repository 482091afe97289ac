# app/config.py
"""
Centralized configuration management with startup validation.

Defines REQUIRED vs OPTIONAL environment variables and provides
safe configuration loading with validation and logging.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from billing.founder import DEFAULT_FOUNDER_MAX_PURCHASES
from billing.products import PRICE_ENV_VARS
from billing.stripe_client import StripeMode, key_mode

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "autoeditor-plans"
SERVICE_VERSION = "0.3.0"

# Default values
DEFAULT_MAX_REQUEST_SIZE_BYTES = 65_536  # 64KB, requests here are small JSON
MIN_REQUEST_SIZE_BYTES = 1024  # 1KB minimum

LEDGER_BACKEND_SQLITE = "sqlite"
LEDGER_BACKEND_MEMORY = "memory"
LEDGER_BACKENDS = (LEDGER_BACKEND_SQLITE, LEDGER_BACKEND_MEMORY)

# Sensitive substrings that should never appear in logs
SENSITIVE_SUBSTRINGS = ("key", "token", "secret", "password", "credential")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AppConfig:
    """Application configuration loaded from environment."""

    # Service info
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    environment: str = "development"

    # Security settings
    max_request_size_bytes: int = DEFAULT_MAX_REQUEST_SIZE_BYTES

    # Usage ledger
    ledger_backend: str = LEDGER_BACKEND_SQLITE

    # Founder seats
    founder_max_purchases: int = DEFAULT_FOUNDER_MAX_PURCHASES

    # Billing (presence only, never the values)
    stripe_secret_key_present: bool = False
    stripe_mode: Optional[str] = None
    configured_price_count: int = 0

    # Warnings collected during config load
    warnings: list = field(default_factory=list)


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_int_env(
    name: str, default: int, min_value: Optional[int] = None
) -> tuple[int, Optional[str]]:
    """
    Parse an integer environment variable with validation.

    Returns (value, warning_message).
    On invalid input, returns default with a warning.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = int(raw)
    except ValueError:
        warning = f"{name}='{raw}' is not a valid integer; using default {default}"
        return default, warning

    if min_value is not None and value < min_value:
        warning = f"{name}={value} is below minimum {min_value}; using default {default}"
        return default, warning

    return value, None


def load_config(fail_fast: bool = True) -> AppConfig:
    """
    Load and validate application configuration from environment.

    Args:
        fail_fast: If True, raise ConfigurationError on critical issues.
                   If False, collect warnings and continue.

    Returns:
        AppConfig instance with validated configuration.

    Raises:
        ConfigurationError: If required configuration is missing/invalid
                           and fail_fast is True.
    """
    warnings = []

    environment = os.environ.get("PLANS_ENV", "development").lower()

    max_request_size, size_warning = _parse_int_env(
        "MAX_REQUEST_SIZE_BYTES",
        DEFAULT_MAX_REQUEST_SIZE_BYTES,
        min_value=MIN_REQUEST_SIZE_BYTES,
    )
    if size_warning:
        warnings.append(size_warning)

    founder_max, founder_warning = _parse_int_env(
        "FOUNDER_MAX_PURCHASES",
        DEFAULT_FOUNDER_MAX_PURCHASES,
        min_value=0,
    )
    if founder_warning:
        warnings.append(founder_warning)

    # The in-memory ledger loses counters on restart; never allowed in production.
    ledger_backend = os.environ.get("PLANS_LEDGER_BACKEND", LEDGER_BACKEND_SQLITE).lower()
    if ledger_backend not in LEDGER_BACKENDS:
        message = (
            f"PLANS_LEDGER_BACKEND='{ledger_backend}' is not one of {', '.join(LEDGER_BACKENDS)}"
        )
        if fail_fast:
            raise ConfigurationError(message)
        warnings.append(f"{message}; using {LEDGER_BACKEND_SQLITE}")
        ledger_backend = LEDGER_BACKEND_SQLITE
    elif ledger_backend == LEDGER_BACKEND_MEMORY and environment == "production":
        message = "PLANS_LEDGER_BACKEND=memory is not allowed in production"
        if fail_fast:
            raise ConfigurationError(message)
        warnings.append(f"{message}; using {LEDGER_BACKEND_SQLITE}")
        ledger_backend = LEDGER_BACKEND_SQLITE

    stripe_key = os.environ.get("STRIPE_SECRET_KEY", "").strip()
    stripe_secret_key_present = bool(stripe_key)
    mode = key_mode(stripe_key)

    if stripe_secret_key_present and mode is None:
        warnings.append(
            "STRIPE_SECRET_KEY is not an sk_ or rk_ key; checkout is disabled"
        )
    if mode is StripeMode.LIVE and environment != "production":
        warnings.append(f"STRIPE_SECRET_KEY is a live key in {environment}")

    price_vars = set(PRICE_ENV_VARS.values())
    configured_price_count = sum(1 for name in price_vars if os.environ.get(name))

    if stripe_secret_key_present and configured_price_count == 0:
        warnings.append(
            "STRIPE_SECRET_KEY is set but no STRIPE_PRICE_ID_* variables are; "
            "every plan will show as unavailable at checkout"
        )

    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")

    return AppConfig(
        environment=environment,
        max_request_size_bytes=max_request_size,
        ledger_backend=ledger_backend,
        founder_max_purchases=founder_max,
        stripe_secret_key_present=stripe_secret_key_present,
        stripe_mode=mode.value if mode else None,
        configured_price_count=configured_price_count,
        warnings=warnings,
    )


def log_config_snapshot(config: AppConfig) -> str:
    """
    Generate and log a safe configuration snapshot.

    Returns the snapshot string for testing purposes.
    Never logs actual secret values - only boolean presence flags.
    """
    snapshot = (
        f"[STARTUP] service={config.service_name} "
        f"version={config.service_version} "
        f"environment={config.environment} "
        f"max_request_size_bytes={config.max_request_size_bytes} "
        f"ledger_backend={config.ledger_backend} "
        f"founder_max_purchases={config.founder_max_purchases} "
        f"stripe_secret_key_present={config.stripe_secret_key_present} "
        f"stripe_mode={config.stripe_mode} "
        f"configured_price_count={config.configured_price_count}"
    )
    logger.info(snapshot)
    return snapshot


def validate_config_snapshot_safety(snapshot: str) -> bool:
    """
    Validate that a config snapshot doesn't contain sensitive values.

    Returns True if safe, False if potentially unsafe.
    """
    snapshot_lower = snapshot.lower()

    # Allow "key_present=true" but not "key=sk_live_..."
    for sensitive in SENSITIVE_SUBSTRINGS:
        pattern = rf"{sensitive}=(?!true|false)"
        if re.search(pattern, snapshot_lower):
            return False

    return True
