#!/usr/bin/env python3
"""Exception Hierarchy for the Fleet Updater.

This module provides a structured exception hierarchy for the errors that
can occur while preparing and running a fleet update batch.

Design Principles:
    - All exceptions inherit from FleetError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - Only ConfigurationError (and its subclasses) is fatal to a batch

Exception Hierarchy:
    FleetError (base)
    ├── ConfigurationError (unrecoverable - fix config or input)
    │   └── MalformedInputError
    ├── ValidationError (recoverable - row skipped)
    └── NetworkError (per device - carried in a TransportError outcome)
        ├── ConnectionError
        └── TimeoutError

Per-device API rejections are not exceptions; they are UpdateOutcome values
(see outcomes.py).
"""
from datetime import UTC, datetime
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class FleetError(Exception):
    """Base exception for all fleet updater errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "CONFIGURATION_ERROR")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether the batch can continue past this error
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(UTC)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Batch-Fatal)
# ============================================

class ConfigurationError(FleetError):
    """Raised when configuration or batch input is missing or invalid.

    These errors are reported before dispatch starts; the batch never runs.
    """

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        kwargs.setdefault("code", "CONFIGURATION_ERROR")
        super().__init__(
            message,
            details=details,
            recoverable=False,
            **kwargs,
        )


class MalformedInputError(ConfigurationError):
    """Raised when a row of the batch input cannot be read.

    Aborts the remaining batch. Rows already queued are still dispatched.
    """

    def __init__(
        self,
        message: str,
        row_number: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if row_number is not None:
            details["row"] = row_number
        super().__init__(
            message,
            code="MALFORMED_INPUT",
            details=details,
            **kwargs,
        )
        self.row_number = row_number


# ============================================
# Validation Errors (Row Skipped)
# ============================================

class ValidationError(FleetError):
    """Raised (or recorded) when a device identifier is malformed.

    Attributes:
        row_number: 1-based data row in the batch input
        value: The offending value as read
    """

    def __init__(
        self,
        message: str,
        row_number: Optional[int] = None,
        value: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if row_number is not None:
            details["row"] = row_number
        if value is not None:
            details["value"] = value
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.row_number = row_number
        self.value = value


# ============================================
# Network Errors (Per Device)
# ============================================

class NetworkError(FleetError):
    """Base class for network-related errors.

    These never propagate out of the dispatcher; they are wrapped in a
    TransportError outcome for the device concerned.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        kwargs.setdefault("code", "NETWORK_ERROR")
        super().__init__(message, **kwargs)


class ConnectionError(NetworkError):
    """Raised when connection to the profile endpoint fails."""

    def __init__(
        self,
        message: str = "Failed to connect to server",
        host: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details=details,
            **kwargs,
        )


class TimeoutError(NetworkError):
    """Raised when a request times out."""

    def __init__(
        self,
        message: str = "Request timed out",
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message,
            code="TIMEOUT_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Exports
# ============================================

__all__ = [
    "FleetError",
    "ConfigurationError",
    "MalformedInputError",
    "ValidationError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
]
