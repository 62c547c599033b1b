"""
Custom exceptions for tenant resolution.
"""


class TenantResolutionError(Exception):
    """Raised when a request's host or path cannot be mapped to a routing decision."""
