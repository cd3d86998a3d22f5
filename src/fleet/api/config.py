"""Configuration for a fleet update batch.

FleetConfig is an explicit value passed to the client and the dispatcher.
Only the command line layer calls FleetConfig.from_env(); the core never
reads the environment itself.

Environment Variables:
    FLEET_API_URL: Profile-management endpoint base URL
                   (default: http://fleet.intra.example.com:6565)
    FLEET_AUTH_TOKEN: Static token sent in X-Authentication-Token
"""
import logging
import os
import re
import socket
from dataclasses import dataclass
from typing import Iterable, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://fleet.intra.example.com:6565"
DEFAULT_WORKERS = 4
TOKEN_PLACEHOLDER = "<required>"

APP_SPEC_PATTERN = re.compile(r"(?P<application_id>\w+)=(?P<version>v\d+\.\d+\.\d+)")


@dataclass(frozen=True)
class FleetConfig:
    """Settings shared by every worker in a batch.

    Attributes:
        endpoint: Base URL of the profile-management API (no trailing slash)
        auth_token: Value of the X-Authentication-Token header
        hostname: Value of the X-Client-ID header (the invoking host)
        workers: Number of concurrent workers
        request_timeout: Total per-request timeout in seconds. None keeps
            aiohttp's default.
    """

    endpoint: str = DEFAULT_ENDPOINT
    auth_token: str = TOKEN_PLACEHOLDER
    hostname: str = "<unknown>"
    workers: int = DEFAULT_WORKERS
    request_timeout: Optional[float] = None

    def __post_init__(self):
        if not self.endpoint:
            raise ConfigurationError(
                "Fleet API endpoint is required",
                missing_keys=["FLEET_API_URL"],
            )
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))
        require_positive_workers(self.workers)

    def profile_url(self, device_id: str) -> str:
        return f"{self.endpoint}/profiles/clientId:{device_id}"

    @classmethod
    def from_env(cls, **overrides) -> "FleetConfig":
        """Load configuration from the environment (and a .env file).

        Args:
            **overrides: Explicit values that win over the environment,
                e.g. workers from the command line.
        """
        load_dotenv()

        values = {
            "endpoint": os.getenv("FLEET_API_URL", DEFAULT_ENDPOINT),
            "hostname": socket.gethostname(),
        }

        token = os.getenv("FLEET_AUTH_TOKEN")
        if token is None:
            logger.warning("FLEET_AUTH_TOKEN should be defined.")
            token = TOKEN_PLACEHOLDER
        values["auth_token"] = token

        values.update(overrides)
        return cls(**values)


def require_positive_workers(workers) -> None:
    """Raise ConfigurationError unless workers is a positive integer."""
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ConfigurationError(
            "Need positive number of workers.",
            details={"workers": workers},
        )


def parse_application_versions(specs: Iterable[str]) -> dict[str, str]:
    """Parse ``application_id=vM.m.p`` arguments into a version map.

    A later spec for the same application replaces an earlier one.

    Raises:
        ConfigurationError: If a spec does not match the expected form
    """
    applications: dict[str, str] = {}
    for spec in specs:
        match = APP_SPEC_PATTERN.fullmatch(spec)
        if match is None:
            raise ConfigurationError(
                f"Invalid app version specification '{spec}'",
                details={"expected": "application_id=vMAJOR.MINOR.PATCH"},
            )
        applications[match.group("application_id")] = match.group("version")
    return applications
