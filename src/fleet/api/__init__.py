"""Fleet profile API modules.

This package provides the HTTP client, payload builder and error types used
to push an application-version update to device profiles.

Classes:
    UpdateClient: aiohttp client issuing one PUT per device
    FleetConfig: Endpoint, token, caller identity and worker count
    UpdatePayload: Immutable serialized update document

Outcomes:
    Success, StructuredApiError, MalformedResponse, TransportError

Exceptions:
    FleetError: Base exception for all fleet updater errors
    ConfigurationError: Batch-fatal configuration or input problem
    MalformedInputError: Unreadable row in the batch input
    ValidationError: Malformed device identifier (row skipped)
    NetworkError: Transport failure for one device
"""
from .client import ApiErrorBody, UpdateClient
from .config import FleetConfig, parse_application_versions
from .exceptions import (
    ConfigurationError,
    ConnectionError,
    FleetError,
    MalformedInputError,
    NetworkError,
    TimeoutError,
    ValidationError,
)
from .outcomes import (
    MalformedResponse,
    StructuredApiError,
    Success,
    TransportError,
    UpdateOutcome,
)
from .payload import ApplicationVersion, UpdatePayload, build_payload

__all__ = [
    # Client
    "UpdateClient",
    "ApiErrorBody",
    # Configuration
    "FleetConfig",
    "parse_application_versions",
    # Payload
    "ApplicationVersion",
    "UpdatePayload",
    "build_payload",
    # Outcomes
    "UpdateOutcome",
    "Success",
    "StructuredApiError",
    "MalformedResponse",
    "TransportError",
    # Exceptions
    "FleetError",
    "ConfigurationError",
    "MalformedInputError",
    "ValidationError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
]
