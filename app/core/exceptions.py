"""Custom exception types for the billing codec, ledger client and API layers."""
from __future__ import annotations


class AppError(Exception):
    """Base app exception."""


class ConfigurationError(AppError):
    """Missing or invalid runtime configuration (program id, merchant key)."""


class InvalidAddressError(AppError, ValueError):
    """Address text or bytes that do not form a 32-byte ledger address."""


class ParseError(AppError):
    """Account buffer that cannot be decoded as a subscription record."""

    reason = "parse_error"

    def __init__(self, message: str, address: str | None = None):
        super().__init__(message)
        self.address = address


class AccountTooSmallError(ParseError):
    reason = "too_small"


class DiscriminatorMismatchError(ParseError):
    reason = "wrong_discriminator"


class ImplausibleValuesError(ParseError):
    reason = "garbage_values"


class IntegrationError(AppError):
    """External integration call failure."""


class RPCError(IntegrationError):
    """JSON-RPC error object returned by the ledger node."""

    def __init__(self, method: str, code: int | None, message: str, data=None):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.data = data


class TransactionError(AppError):
    """Charge transaction rejected, failed on-chain, or never confirmed."""

    def __init__(self, message: str, signature: str | None = None):
        super().__init__(message)
        self.signature = signature


class RateLimitExceeded(AppError):
    """Trigger rejected before any batch work started."""

    def __init__(self, retry_after_seconds: int):
        super().__init__(f"Rate limit exceeded, retry after {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds
