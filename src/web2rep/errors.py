"""
web2rep/errors.py

Exception taxonomy for web2rep.

Per-provider failures (UpstreamUnavailableError, NetworkTimeoutError) are
recoverable: the service logs them and treats the provider as absent.
Aggregate-level failures (NoProvidersError, HashMismatchError,
SignatureInvalidError) propagate to the caller.
"""

from typing import Optional


class Web2RepError(Exception):
    """Base class for all web2rep errors."""


class ValidationError(Web2RepError, ValueError):
    """Malformed input: wallet address, identity key, provider or metrics."""


class NoProvidersError(Web2RepError):
    """Aggregation was requested with zero usable providers."""

    def __init__(self, message: str = "No valid Web2 data found"):
        super().__init__(message)


class UpstreamUnavailableError(Web2RepError):
    """A single provider fetch failed."""

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        super().__init__(f"{provider}: {message}" if message else provider)


class NetworkTimeoutError(UpstreamUnavailableError):
    """An upstream call exceeded its deadline."""

    def __init__(self, provider: str, timeout: Optional[float] = None):
        self.timeout = timeout
        detail = f"timed out after {timeout}s" if timeout is not None else "timed out"
        super().__init__(provider, detail)


class HashMismatchError(Web2RepError):
    """A claimed achievement hash does not match the recomputed one."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"achievement hash mismatch: claimed {actual}, computed {expected}")


class SignatureInvalidError(Web2RepError):
    """Binding signature did not verify for the reconstructed message."""
