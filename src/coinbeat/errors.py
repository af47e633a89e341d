"""Domain error taxonomy.

Services raise these; the error-handler middleware renders them as
``{"detail": ...}`` JSON with the class's status code.
"""

from __future__ import annotations


class CoinbeatError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(CoinbeatError):
    status_code = 400


class AuthError(CoinbeatError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class InsufficientFundsError(CoinbeatError):
    status_code = 403


class NotFoundError(CoinbeatError):
    status_code = 404


class ConflictError(CoinbeatError):
    status_code = 409


class PoolResolvedError(ConflictError):
    """Verify/reject attempted on a pool that already reached a terminal status."""

    status_code = 400


class InvalidStateError(CoinbeatError):
    status_code = 400


class UpstreamError(CoinbeatError):
    """Backing store or third-party failure. The message is passed through unchanged."""

    status_code = 500
