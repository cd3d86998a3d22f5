#!/usr/bin/env python3
"""HTTP Client for the fleet profile-management API.

This module issues one profile update per device and classifies the reply
into an UpdateOutcome:

    - Transport/connection failure          -> TransportError
    - 200 with a JSON content type          -> Success
    - Any other status with a JSON body     -> StructuredApiError
    - Non-JSON content type (any status)    -> MalformedResponse

Design Philosophy:
    The client knows HOW to talk to the profile endpoint, but not WHICH
    devices to update or in what order. That belongs to the Dispatcher.
    There are no retries and no backoff; one call is one attempt.

Usage:
    async with UpdateClient(config) as client:
        outcome = await client.update("aa:bb:cc:dd:ee:ff", payload)
        if not outcome.is_success:
            logger.warning(outcome.describe())
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .config import FleetConfig
from .exceptions import ConnectionError, NetworkError, TimeoutError
from .outcomes import (
    MalformedResponse,
    StructuredApiError,
    Success,
    TransportError,
    UpdateOutcome,
)
from .payload import UpdatePayload

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
CLIENT_ID_HEADER = "X-Client-ID"
AUTH_TOKEN_HEADER = "X-Authentication-Token"


# ============================================
# Error Body
# ============================================

@dataclass
class ApiErrorBody:
    """Decoded ``{statusCode, error, message}`` error document."""

    status_code: int = 0
    error: str = ""
    message: str = ""

    @classmethod
    def from_json(cls, text: str) -> "ApiErrorBody":
        """Decode an error body.

        Missing fields keep their defaults; fields of the wrong type are a
        decode failure.

        Raises:
            ValueError: If the text is not a JSON object of the expected shape
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(
                f"expected a JSON object in error body, got {type(data).__name__}"
            )

        status_code = data.get("statusCode", 0)
        if isinstance(status_code, bool) or not isinstance(status_code, int):
            raise ValueError(f"statusCode must be an integer, got {status_code!r}")

        for key in ("error", "message"):
            if not isinstance(data.get(key, ""), str):
                raise ValueError(f"{key} must be a string, got {data[key]!r}")

        return cls(
            status_code=status_code,
            error=data.get("error", ""),
            message=data.get("message", ""),
        )


# ============================================
# The Client
# ============================================

class UpdateClient:
    """Async HTTP client that pushes an update payload to device profiles.

    Use as an async context manager so the aiohttp session is opened once
    per batch and shared by all workers:

        async with UpdateClient(config) as client:
            outcome = await client.update(device_id, payload)

    Attributes:
        config: FleetConfig with endpoint, token and caller identity
    """

    def __init__(self, config: FleetConfig):
        """Initialize the UpdateClient.

        Args:
            config: Batch configuration. ``config.workers`` sizes the
                connection pool so workers never wait on each other for a
                connection.
        """
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "UpdateClient":
        """Enter async context: create the HTTP session."""
        limit = max(self.config.workers, 1)
        session_kwargs = {}
        if self.config.request_timeout:
            session_kwargs["timeout"] = aiohttp.ClientTimeout(
                total=self.config.request_timeout,
            )

        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=limit,
                limit_per_host=limit,
            ),
            **session_kwargs,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Update
    # ----------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": JSON_CONTENT_TYPE,
            CLIENT_ID_HEADER: self.config.hostname,
            AUTH_TOKEN_HEADER: self.config.auth_token,
        }

    async def update(self, device_id: str, payload: UpdatePayload) -> UpdateOutcome:
        """Send the update payload to one device's profile.

        Args:
            device_id: Validated MAC address of the device
            payload: Shared, immutable update payload

        Returns:
            Exactly one UpdateOutcome. Network failures are returned as
            TransportError, never raised.

        Raises:
            RuntimeError: If called outside of async context manager
        """
        if not self._session:
            raise RuntimeError(
                "UpdateClient must be used as async context manager: "
                "async with UpdateClient(...) as client:"
            )

        url = self.config.profile_url(device_id)
        logger.debug(f"Updating '{url}'")

        try:
            async with self._session.put(
                url,
                data=payload.body,
                headers=self._headers(),
            ) as response:
                return await self._classify(device_id, url, response)

        except asyncio.TimeoutError as e:
            cause = TimeoutError(
                f"Request to {url} timed out",
                timeout_seconds=self.config.request_timeout,
                cause=e,
            )

        except aiohttp.ClientConnectionError as e:
            cause = ConnectionError(
                f"Failed to connect to {self.config.endpoint}: {e}",
                host=self.config.endpoint,
                cause=e,
            )

        except aiohttp.ClientError as e:
            cause = NetworkError(
                f"Network error during PUT {url}: {e}",
                cause=e,
            )

        return TransportError(device_id=device_id, url=url, cause=cause)

    async def _classify(
        self,
        device_id: str,
        url: str,
        response: aiohttp.ClientResponse,
    ) -> UpdateOutcome:
        """Map an HTTP response onto an UpdateOutcome."""
        is_json = response.content_type == JSON_CONTENT_TYPE
        reason = response.reason or ""

        if response.status == 200 and is_json:
            return Success(device_id=device_id, url=url, status=response.status)

        if is_json:
            try:
                body = ApiErrorBody.from_json(await response.text())
                code, message = body.error, body.message
            except ValueError as e:
                # Includes JSONDecodeError and UnicodeDecodeError
                code, message = "", str(e)

            return StructuredApiError(
                device_id=device_id,
                url=url,
                status=response.status,
                reason=reason,
                code=code,
                message=message,
            )

        # Not JSON at all; maybe we're not talking to the right API
        return MalformedResponse(
            device_id=device_id,
            url=url,
            status=response.status,
            reason=reason,
            content_type=response.content_type,
        )
