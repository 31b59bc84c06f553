"""Database models for organizations, subscriptions and marketplace orders."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from db.database import Base
import enum
import uuid


class Role(str, enum.Enum):
    """Role of a user inside their organization."""
    USER = "USER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


class SubscriptionTier(str, enum.Enum):
    """Paid subscription tiers (FREE is the absence of a subscription)."""
    STANDARD = "STANDARD"
    PRO = "PRO"


class BillingPeriod(str, enum.Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class OrderStatus(str, enum.Enum):
    """Lifecycle of a marketplace order."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"      # buyer paid, seller can start
    CANCELED = "CANCELED"
    COMPLETED = "COMPLETED"    # seller paid out


def _uuid() -> str:
    return str(uuid.uuid4())


class Organization(Base):
    """Organization that owns a subscription and buys on the marketplace."""
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Stripe customer id
    payment_id = Column(String, nullable=True, index=True)

    users = relationship("User", back_populates="organization")
    subscription = relationship("Subscription", back_populates="organization", uselist=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "payment_id": self.payment_id,
        }


class User(Base):
    """User model for authentication, roles and marketplace selling."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    organization_id = Column(String, ForeignKey("organizations.id"), nullable=False, index=True)
    role = Column(SQLEnum(Role), default=Role.USER, nullable=False)

    # Stripe connected account (marketplace sellers)
    account = Column(String, nullable=True, index=True)
    connected_account = Column(Boolean, default=False, nullable=False)

    organization = relationship("Organization", back_populates="users")

    def to_dict(self) -> dict:
        """Convert user to dictionary (without sensitive data)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "organization_id": self.organization_id,
            "connected_account": bool(self.connected_account),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Subscription(Base):
    """Organization subscription mirrored from Stripe webhook events."""
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, default=_uuid)
    organization_id = Column(String, ForeignKey("organizations.id"), nullable=False, unique=True)
    subscription_tier = Column(SQLEnum(SubscriptionTier), nullable=False)
    total_channels = Column(Integer, nullable=False, default=0)
    period = Column(SQLEnum(BillingPeriod), nullable=False)

    # Id stamped into Stripe metadata by subscribe/set_to_cancel, polled by the frontend
    identifier = Column(String, nullable=True, index=True)

    cancel_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="subscription")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "organization_id": self.organization_id,
            "subscription_tier": self.subscription_tier.value,
            "total_channels": self.total_channels,
            "period": self.period.value,
            "identifier": self.identifier,
            "cancel_at": self.cancel_at.isoformat() if self.cancel_at else None,
            "active": self.is_active,
        }


class Order(Base):
    """Marketplace order placed by an organization with a seller."""
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    buyer_organization_id = Column(String, ForeignKey("organizations.id"), nullable=False, index=True)
    seller_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    group_id = Column(String, nullable=False)  # message group the order was negotiated in
    status = Column(SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False)

    # Stripe charge id, set once the checkout completes
    captured = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    seller = relationship("User")
    buyer = relationship("Organization")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    @property
    def total_price(self) -> int:
        """Order total before the platform fee, in whole currency units."""
        return sum(item.price * item.quantity for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyer_organization_id": self.buyer_organization_id,
            "seller_id": self.seller_id,
            "group_id": self.group_id,
            "status": self.status.value,
            "total_price": self.total_price,
            "items": [item.to_dict() for item in self.items],
        }


class OrderItem(Base):
    """One line of a marketplace order."""
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    integration_type = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Integer, nullable=False, default=0)

    order = relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "integration_type": self.integration_type,
            "quantity": self.quantity,
            "price": self.price,
        }
