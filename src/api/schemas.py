"""
Pydantic schemas for API request/response validation.

These schemas define the structure and validation rules for all API endpoints.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional, Literal
from datetime import datetime


# ============================================================================
# Billing Schemas
# ============================================================================

class BillingSubscribeRequest(BaseModel):
    """Plan chosen on the billing page."""
    billing: Literal["STANDARD", "PRO"]
    period: Literal["MONTHLY", "YEARLY"]


class PackageResponse(BaseModel):
    name: Optional[str] = None
    recurring: Optional[str] = None
    price: Optional[float] = None


class SubscribeResponse(BaseModel):
    """
    Outcome of a subscribe request.

    Exactly one field is set: a checkout url for new subscribers, the id to
    poll after an in-place plan change, or a billing-portal url when the
    change was refused.
    """
    url: Optional[str] = None
    id: Optional[str] = None
    portal: Optional[str] = None


class ProrateResponse(BaseModel):
    price: float


class CancelResponse(BaseModel):
    id: str
    cancel_at: Optional[datetime] = None


class CheckResponse(BaseModel):
    status: bool


class UrlResponse(BaseModel):
    url: str


class SubscriptionResponse(BaseModel):
    organization_id: str
    subscription_tier: str
    total_channels: int
    period: str
    identifier: Optional[str] = None
    cancel_at: Optional[str] = None
    active: bool


# ============================================================================
# Marketplace Schemas
# ============================================================================

class OrderItemSchema(BaseModel):
    integration_type: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    price: int = Field(0, ge=0)


class CreateOrderRequest(BaseModel):
    """Offer made by a seller to a buyer organization."""
    buyer_organization_id: str
    group_id: str
    items: List[OrderItemSchema] = Field(..., min_length=1)


class OrderResponse(BaseModel):
    id: str
    buyer_organization_id: str
    seller_id: str
    group_id: str
    status: str
    total_price: int
    items: List[OrderItemSchema]


class PayoutResponse(BaseModel):
    ok: bool = True
    transfer: str


# ============================================================================
# Navigation Schemas
# ============================================================================

class MenuEntry(BaseModel):
    name: str
    icon: str
    path: str
    active: bool


class MenuResponse(BaseModel):
    items: List[MenuEntry]


# ============================================================================
# Auth Schemas
# ============================================================================

class RegisterRequest(BaseModel):
    """New account: the user becomes administrator of a new organization."""
    email: EmailStr
    password: str
    name: Optional[str] = None
    organization_name: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


class ProfileResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    organization_id: str
    connected_account: bool
