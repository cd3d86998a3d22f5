"""Update payload construction.

Turns an application-id -> version mapping into the request body sent to
every device's profile. The payload is built once per batch and shared
read-only by all workers.
"""
import json
import logging
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplicationVersion:
    """One application pinned to a target version."""

    application_id: str
    version: str

    def to_dict(self) -> dict[str, str]:
        return {"applicationId": self.application_id, "version": self.version}


@dataclass(frozen=True)
class UpdatePayload:
    """Immutable, serialized update document.

    Attributes:
        applications: Entries sorted by application id
        body: Compact JSON bytes sent as the PUT body
    """

    applications: tuple[ApplicationVersion, ...]
    body: bytes

    def to_dict(self) -> dict:
        return {
            "profile": {
                "applications": [app.to_dict() for app in self.applications],
            }
        }

    def pretty(self) -> str:
        """Indented rendering for debug output."""
        return json.dumps(self.to_dict(), indent=2)


def build_payload(applications: Mapping[str, str]) -> UpdatePayload:
    """Build the canonical update payload.

    Entries are sorted by application id so identical maps always produce
    identical bytes. An empty map yields an empty ``applications`` array.

    Args:
        applications: Mapping of application id to version ("vM.m.p")

    Returns:
        UpdatePayload ready to be shared by all workers
    """
    entries = tuple(
        ApplicationVersion(application_id=app_id, version=version)
        for app_id, version in sorted(applications.items())
    )
    document = {
        "profile": {
            "applications": [entry.to_dict() for entry in entries],
        }
    }
    body = json.dumps(document, separators=(",", ":")).encode("utf-8")

    logger.debug(f"Built update payload with {len(entries)} application(s)")
    return UpdatePayload(applications=entries, body=body)
