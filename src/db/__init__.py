"""Database module for the billing service."""

from db.database import Base, engine, SessionLocal, get_db, init_db
from db.models import (
    Organization,
    User,
    Role,
    Subscription,
    SubscriptionTier,
    BillingPeriod,
    Order,
    OrderItem,
    OrderStatus,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "Organization",
    "User",
    "Role",
    "Subscription",
    "SubscriptionTier",
    "BillingPeriod",
    "Order",
    "OrderItem",
    "OrderStatus",
]
