# app/schemas/entitlements.py
"""
Pydantic schemas for the entitlements and billing API.

Requests use snake_case to match existing API conventions; responses
are built from the engine's to_dict() helpers, which use the camelCase
keys the web client already reads.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from entitlements.clamp import normalize_quality
from entitlements.enforcer import RequestedOperation


class OperationRequest(BaseModel):
    """A requested operation and its cost estimate."""
    quality: Optional[str] = None
    preset_id: Optional[str] = None
    auto_zoom: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    advanced_effects: bool = False
    renders: int = Field(default=0, ge=0)
    minutes: float = Field(default=0.0, ge=0, allow_inf_nan=False)

    @field_validator("preset_id")
    @classmethod
    def strip_preset_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def to_operation(self) -> RequestedOperation:
        return RequestedOperation(
            quality=normalize_quality(self.quality) if self.quality else None,
            preset_id=self.preset_id,
            auto_zoom=self.auto_zoom,
            advanced_effects=self.advanced_effects,
            renders=self.renders,
            minutes=self.minutes,
        )


class ClampRequest(BaseModel):
    """Render settings to downgrade to what the plan permits."""
    quality: Optional[str] = None
    preset_id: Optional[str] = None
    auto_zoom: Optional[float] = Field(default=None, allow_inf_nan=False)


class ClampResponse(BaseModel):
    """Settings the render should actually use."""
    quality: str
    height: int
    preset_id: Optional[str] = None
    auto_zoom: Optional[float] = None
    adjusted: bool = False


class CheckoutRequest(BaseModel):
    """Checkout initiation request."""
    tier: str
    interval: str = "monthly"
    email: EmailStr
    success_url: str = Field(min_length=1)
    cancel_url: str = Field(min_length=1)
    customer_id: Optional[str] = None


class CheckoutResponse(BaseModel):
    """Checkout session created at the payment provider."""
    request_id: str
    session_id: str
    checkout_url: str


class FounderConfirmRequest(BaseModel):
    """Founder checkout to confirm after the buyer returns."""
    session_id: str = Field(min_length=1)


class FounderConfirmResponse(BaseModel):
    """Result of confirming a founder checkout."""
    request_id: str
    recorded: bool
    founder: dict


class PriceResponse(BaseModel):
    """Price lookup result. An empty price_id means unavailable."""
    tier: str
    interval: str
    price_id: str
    available: bool
