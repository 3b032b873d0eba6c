"""Upstream weather data providers"""

from .base import UpstreamProvider

__all__ = ["UpstreamProvider"]
