"""
Custom exception hierarchy for the billing service.

Provides a consistent error handling approach across all modules.
Stripe SDK errors are not wrapped: they propagate to the caller unchanged.
"""


class BillingError(Exception):
    """
    Base exception for all billing service errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ==================== Configuration Errors ====================

class ConfigurationError(BillingError):
    """
    Error in system configuration.

    Raised when required configuration is missing or invalid.
    """
    pass


class MissingAPIKeyError(ConfigurationError):
    """Raised when the Stripe secret key is not configured."""
    pass


# ==================== Lookup Errors ====================

class NotFoundError(BillingError):
    """
    Base error for missing persisted records.
    """
    pass


class OrganizationNotFoundError(NotFoundError):
    """Raised when an organization doesn't exist."""

    def __init__(self, organization_id: str):
        super().__init__(
            f"Organization not found: {organization_id}",
            {'organization_id': organization_id}
        )
        self.organization_id = organization_id


class UserNotFoundError(NotFoundError):
    """Raised when a user doesn't exist."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}", {'user_id': user_id})
        self.user_id = user_id


class OrderNotFoundError(NotFoundError):
    """Raised when a marketplace order doesn't exist."""

    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}", {'order_id': order_id})
        self.order_id = order_id


class SubscriptionNotFoundError(NotFoundError):
    """Raised when an organization has no active provider subscription."""
    pass


# ==================== Marketplace Errors ====================

class OrderStateError(BillingError):
    """
    Raised when an order is in an invalid state for the operation.

    Example: completing an order that was never paid.
    """

    def __init__(self, message: str, order_id: str = "", status: str = ""):
        super().__init__(message, {'order_id': order_id, 'status': status})
        self.order_id = order_id
        self.status = status


class SellerAccountError(OrderStateError):
    """Raised when a seller has no usable connected account for a payout."""
    pass
