"""
Figma API access.
"""

from .figma_client import FigmaApiError, FigmaClient, FigmaNetworkError
from .request_throttle import RequestThrottle

__all__ = ["FigmaApiError", "FigmaClient", "FigmaNetworkError", "RequestThrottle"]
