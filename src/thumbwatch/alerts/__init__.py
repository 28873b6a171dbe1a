"""
Alerts Module
=============

Webhook notification for unhealthy frames and freeze starts.
"""

from thumbwatch.alerts.dispatcher import (
    AlertDeliveryError,
    AlertDispatcher,
    DispatcherMetrics,
)


__all__ = [
    "AlertDeliveryError",
    "AlertDispatcher",
    "DispatcherMetrics",
]
