"""
Utility functions for the billing service.
"""

from utils.ids import make_id
from utils.metrics import MetricsCollector, get_metrics_collector
from utils.validators import validate_password

__all__ = [
    'make_id',
    'MetricsCollector',
    'get_metrics_collector',
    'validate_password',
]
