"""
Core module for the billing service.

Exports the exception hierarchy for easy access.
"""

from core.exceptions import (
    BillingError,
    ConfigurationError,
    MissingAPIKeyError,
    NotFoundError,
    OrganizationNotFoundError,
    UserNotFoundError,
    OrderNotFoundError,
    SubscriptionNotFoundError,
    OrderStateError,
    SellerAccountError,
)

__all__ = [
    'BillingError',
    'ConfigurationError',
    'MissingAPIKeyError',
    'NotFoundError',
    'OrganizationNotFoundError',
    'UserNotFoundError',
    'OrderNotFoundError',
    'SubscriptionNotFoundError',
    'OrderStateError',
    'SellerAccountError',
]
