"""
Subscription persistence service.

Mirrors Stripe subscription and connected-account state into the local
database. Called by the Stripe façade when webhook events arrive and when
customers or connected accounts are created.
"""

from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from core.exceptions import OrganizationNotFoundError, UserNotFoundError
from db.models import (
    Organization,
    User,
    Subscription,
    SubscriptionTier,
    BillingPeriod,
)


def timestamp_to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to a naive UTC datetime."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class SubscriptionService:
    """Persistence operations for subscriptions, customers and connected accounts."""

    def __init__(self, db: Session):
        self.db = db

    def _org_by_customer(self, customer_id: str) -> Optional[Organization]:
        return self.db.query(Organization).filter(
            Organization.payment_id == customer_id
        ).first()

    def get_subscription(self, organization_id: str) -> Optional[Subscription]:
        """Get the organization's live subscription, if any."""
        return self.db.query(Subscription).filter(
            Subscription.organization_id == organization_id,
            Subscription.deleted_at.is_(None)
        ).first()

    def create_or_update_subscription(
        self,
        identifier: str,
        customer_id: str,
        total_channels: int,
        billing: str,
        period: str,
        cancel_at: Optional[int] = None
    ) -> Optional[Subscription]:
        """
        Upsert the subscription of the organization owning a Stripe customer.

        Args:
            identifier: Id stamped into the Stripe subscription metadata
            customer_id: Stripe customer id
            total_channels: Channel allowance of the tier
            billing: Tier name (STANDARD or PRO)
            period: MONTHLY or YEARLY
            cancel_at: Unix timestamp of a scheduled cancellation, if any

        Returns:
            The stored subscription, or None when no organization owns the customer
        """
        org = self._org_by_customer(customer_id)
        if org is None:
            logger.warning(f"No organization for Stripe customer {customer_id}, subscription ignored")
            return None

        subscription = self.db.query(Subscription).filter(
            Subscription.organization_id == org.id
        ).first()

        if subscription is None:
            subscription = Subscription(organization_id=org.id)
            self.db.add(subscription)

        subscription.identifier = identifier
        subscription.subscription_tier = SubscriptionTier(billing.upper())
        subscription.period = BillingPeriod(period.upper())
        subscription.total_channels = total_channels
        subscription.cancel_at = timestamp_to_datetime(cancel_at)
        subscription.deleted_at = None

        self.db.commit()
        self.db.refresh(subscription)

        logger.info(
            f"Organization {org.id} subscribed to {subscription.subscription_tier.value} "
            f"({subscription.period.value}, {total_channels} channels)"
        )
        return subscription

    def delete_subscription(self, customer_id: str) -> Optional[Subscription]:
        """Soft-delete the subscription of the organization owning a Stripe customer."""
        org = self._org_by_customer(customer_id)
        if org is None:
            logger.warning(f"No organization for Stripe customer {customer_id}, deletion ignored")
            return None

        subscription = self.get_subscription(org.id)
        if subscription is None:
            return None

        subscription.deleted_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Organization {org.id} subscription deleted, back to free tier")
        return subscription

    def check_subscription(self, organization_id: str, identifier: str) -> bool:
        """Whether the webhook for a given subscribe/cancel id has been applied."""
        subscription = self.db.query(Subscription).filter(
            Subscription.organization_id == organization_id,
            Subscription.identifier == identifier
        ).first()
        return subscription is not None

    def update_customer_id(self, organization_id: str, customer_id: str) -> Organization:
        """Store the Stripe customer id of an organization."""
        org = self.db.query(Organization).filter(Organization.id == organization_id).first()
        if org is None:
            raise OrganizationNotFoundError(organization_id)

        org.payment_id = customer_id
        self.db.commit()
        return org

    def update_account(self, user_id: str, account_id: str) -> User:
        """Store the Stripe connected account id of a seller."""
        user = self.get_user_account(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        user.account = account_id
        user.connected_account = False
        self.db.commit()
        return user

    def get_user_account(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def update_connected_status(self, account: str, status: bool) -> Optional[User]:
        """Record whether a connected account can receive payouts."""
        user = self.db.query(User).filter(User.account == account).first()
        if user is None:
            logger.warning(f"No user for connected account {account}, status ignored")
            return None

        user.connected_account = status
        self.db.commit()
        logger.info(f"Connected account {account} status: {'enabled' if status else 'restricted'}")
        return user
