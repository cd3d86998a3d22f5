"""Per-device update outcomes.

Every update call ends in exactly one of four outcomes:

    Success             200 with a JSON body
    StructuredApiError  endpoint rejected the update with a JSON error body
    MalformedResponse   non-JSON reply; endpoint is probably misconfigured
    TransportError      the request never completed

Outcomes are plain values. They are logged and aggregated by the dispatcher
and never raised.
"""
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import NetworkError


@dataclass(frozen=True)
class UpdateOutcome:
    """Base class for the result of one device update.

    Attributes:
        device_id: MAC address the update was addressed to
        url: Full profile URL that was called
    """

    device_id: str
    url: str

    @property
    def is_success(self) -> bool:
        return False

    @property
    def kind(self) -> str:
        return type(self).__name__

    def describe(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.describe()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "device_id": self.device_id,
            "url": self.url,
            "message": self.describe(),
        }


@dataclass(frozen=True)
class Success(UpdateOutcome):
    status: int = 200

    @property
    def is_success(self) -> bool:
        return True

    def describe(self) -> str:
        return f"{self.url} updated."


@dataclass(frozen=True)
class StructuredApiError(UpdateOutcome):
    """The endpoint answered with a decodable (or at least JSON-typed) error.

    ``message`` is the server-supplied message, or the decode error text
    when the body could not be decoded.
    """

    status: int = 0
    reason: str = ""
    code: str = ""
    message: str = ""

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".strip()

    def describe(self) -> str:
        return f"PUT {self.url}: {self.status_line}: {self.message}"


@dataclass(frozen=True)
class MalformedResponse(UpdateOutcome):
    status: int = 0
    reason: str = ""
    content_type: str = ""

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".strip()

    def describe(self) -> str:
        return f"PUT {self.url}: Unexpected API result: {self.status_line}"


@dataclass(frozen=True)
class TransportError(UpdateOutcome):
    cause: Optional[NetworkError] = None

    def describe(self) -> str:
        cause = self.cause.message if self.cause else "unknown transport failure"
        return f"PUT {self.url}: {cause}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["cause"] = self.cause.to_dict() if self.cause else None
        return data


__all__ = [
    "UpdateOutcome",
    "Success",
    "StructuredApiError",
    "MalformedResponse",
    "TransportError",
]
