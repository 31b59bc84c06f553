"""
Configuration module for the billing service.

Provides settings and logging configuration.
"""

from config.settings import get_settings, reload_settings, Settings
from config.logging_config import (
    setup_structured_logging,
    get_logger,
    log_function_call,
    logger,
)

__all__ = [
    # Settings
    'get_settings',
    'reload_settings',
    'Settings',
    # Logging
    'setup_structured_logging',
    'get_logger',
    'log_function_call',
    'logger',
]
