"""
ERROR TAXONOMY

Every failure the pipeline can see, grouped by how it is handled:

  TransientNetworkError  -> retried by the gateway, surfaced after the last attempt
  ClientError            -> never retried, isolated per chain / per token
  SchemaError            -> upstream shape mismatch, isolated like ClientError
  VerificationIndeterminate -> resolved to "not fresh"
  TokenResolutionError   -> no chain answered, aborts that scan only
"""

from typing import Optional


class NansenError(Exception):
    """Base class for every upstream API failure."""

    def __init__(self, message: str, status: Optional[int] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.path = path


class TransientNetworkError(NansenError):
    """Failure worth retrying (timeout, 429, 5xx)."""


class RequestTimeout(TransientNetworkError):
    pass


class RateLimitedError(TransientNetworkError):
    pass


class ServerError(TransientNetworkError):
    pass


class ClientError(NansenError):
    """4xx other than 429. Retrying would only repeat the mistake."""


class SchemaError(NansenError):
    """Response body did not match the expected record layout."""


class TokenResolutionError(Exception):
    """Token screener failed on every requested chain."""


class VerificationIndeterminate(Exception):
    """A freshness sub-check could not be completed."""

    def __init__(self, wallet: str, reason: str):
        super().__init__(f"{wallet}: {reason}")
        self.wallet = wallet
        self.reason = reason
