"""Structured error taxonomy for brokerage and trade failures.

Every failure the service can report maps to one code and one HTTP status,
so handlers can turn it into a stable JSON body without inspecting messages.
"""
from enum import Enum
from typing import Any, Dict, Optional

RAW_EXCERPT_LIMIT = 500


class ErrorCode(str, Enum):
    """Error codes surfaced in JSON error bodies."""

    CREDENTIALS_MISSING = "CREDENTIALS_MISSING"
    SIGNING_FAILED = "SIGNING_FAILED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_MALFORMED = "UPSTREAM_MALFORMED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TRADE_STATE_CONFLICT = "TRADE_STATE_CONFLICT"


class NexusError(Exception):
    """Base exception with structured error code and HTTP status."""

    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        body = {"error": self.message, "code": self.error_code.value}
        body.update(self.details)
        return body


class ConfigurationError(NexusError):
    """Missing or empty credentials. Reports presence flags, never values."""

    error_code = ErrorCode.CREDENTIALS_MISSING
    status_code = 500

    def __init__(self, message: str, has_key: bool = False, has_secret: bool = False):
        super().__init__(message, {"hasKey": has_key, "hasSecret": has_secret})
        self.has_key = has_key
        self.has_secret = has_secret


class SigningError(NexusError):
    """Signing failed, usually because the private key material is malformed."""

    error_code = ErrorCode.SIGNING_FAILED
    status_code = 500


class UpstreamProtocolError(NexusError):
    """Exchange answered with a non-2xx status."""

    error_code = ErrorCode.UPSTREAM_ERROR

    def __init__(self, status: int, body: Any, message: str = "Coinbase API error"):
        super().__init__(message, {"status": status, "details": body})
        self.status_code = status
        self.body = body


class UpstreamMalformedResponse(NexusError):
    """Exchange body could not be parsed as JSON."""

    error_code = ErrorCode.UPSTREAM_MALFORMED
    status_code = 500

    def __init__(self, raw: str, message: str = "Coinbase returned invalid JSON"):
        excerpt = (raw or "")[:RAW_EXCERPT_LIMIT]
        super().__init__(message, {"raw": excerpt})
        self.raw = excerpt


class ValidationError(NexusError):
    """Caller-supplied trade fields are missing or invalid."""

    error_code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class NetworkError(NexusError):
    """Transport-level failure talking to an upstream service."""

    error_code = ErrorCode.NETWORK_ERROR
    status_code = 500


class TradeStateError(NexusError):
    """Transition requested on a trade that is unknown or already terminal."""

    error_code = ErrorCode.TRADE_STATE_CONFLICT
    status_code = 409
