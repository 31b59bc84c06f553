"""
Services module for persistence logic.

This module contains the service classes the Stripe façade writes through.
They can be reused across the API and CLI.
"""

from services.subscription_service import SubscriptionService
from services.organization_service import OrganizationService
from services.messages_service import MessagesService

__all__ = ["SubscriptionService", "OrganizationService", "MessagesService"]
