"""
Range webhook delivery.
"""

from .webhook_dispatcher import RangeDispatchError, RangeWebhookDispatcher

__all__ = ["RangeDispatchError", "RangeWebhookDispatcher"]
