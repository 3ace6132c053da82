"""
Error taxonomy shared by the repository, draft queue and store adapters.
"""


class MemoryProxyError(Exception):
    """Base class for errors reported to callers of the core."""
    pass


class ValidationError(MemoryProxyError):
    """Missing or malformed input. Reported to the caller, never retried."""
    pass


class NotFound(MemoryProxyError):
    """Record id or draft token is absent. May mean a benign concurrent delete."""
    pass


class UpstreamUnavailable(MemoryProxyError):
    """Durable store call failed or timed out. Safe for the caller to retry."""
    pass


class AuthError(MemoryProxyError):
    """Credential retrieval failed. Fatal to the current operation."""
    pass


class StaleRowPosition(NotFound):
    """A row position no longer holds the expected record because rows shifted."""
    pass
