"""Discovery of test cases embedded in a running service."""

from .client import DiscoveryError, DiscoveryOptions, DiscoveryResult, discover

__all__ = ["DiscoveryError", "DiscoveryOptions", "DiscoveryResult", "discover"]
