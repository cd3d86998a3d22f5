"""Concurrent update dispatcher.

Fans one update payload out to every device of a batch using a fixed pool
of asyncio workers that share a bounded queue.

Key Features:
- Bounded queue gives the feeder backpressure when workers fall behind
- Per-device failures are recorded and logged, never propagated
- Blocks until the feeder and every worker have finished
- Each identifier is attempted exactly once; there are no retries

Usage:
    async with UpdateClient(config) as client:
        dispatcher = Dispatcher(client, workers=config.workers)
        report = await dispatcher.run(reader, payload)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Protocol

from ..api.client import UpdateClient
from ..api.config import FleetConfig, require_positive_workers
from ..api.exceptions import NetworkError, ValidationError
from ..api.outcomes import (
    MalformedResponse,
    StructuredApiError,
    TransportError,
    UpdateOutcome,
)
from ..api.payload import UpdatePayload, build_payload
from .reader import DeviceListReader

logger = logging.getLogger(__name__)

# Tells a worker the queue is closed
_STOP = None


class UpdateSender(Protocol):
    """Anything that can push a payload to one device."""

    async def update(self, device_id: str, payload: UpdatePayload) -> UpdateOutcome: ...


# ============================================
# Batch Report
# ============================================

@dataclass
class BatchReport:
    """Outcome of every device in a batch.

    Workers record into the report concurrently; ``record`` takes the lock.
    """

    outcomes: list[UpdateOutcome] = field(default_factory=list)
    skipped: list[ValidationError] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    async def record(self, outcome: UpdateOutcome) -> None:
        async with self._lock:
            self.outcomes.append(outcome)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.is_success)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def failures(self) -> list[UpdateOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.is_success]

    def count(self, kind: type[UpdateOutcome]) -> int:
        return sum(1 for outcome in self.outcomes if isinstance(outcome, kind))

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or time.time()
        return end - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "structured_api_errors": self.count(StructuredApiError),
            "malformed_responses": self.count(MalformedResponse),
            "transport_errors": self.count(TransportError),
            "skipped_rows": len(self.skipped),
            "duration_seconds": round(self.duration_seconds, 3),
            "failures": [outcome.to_dict() for outcome in self.failures],
        }


# ============================================
# Dispatcher
# ============================================

class Dispatcher:
    """Worker pool that sends one payload to many devices.

    Attributes:
        client: Update client shared by all workers
        workers: Number of concurrent workers (fixed for the batch)
    """

    def __init__(self, client: UpdateSender, workers: int):
        """Initialize the dispatcher.

        Args:
            client: Opened UpdateClient (or any UpdateSender)
            workers: Positive number of concurrent workers

        Raises:
            ConfigurationError: If workers is not a positive integer
        """
        require_positive_workers(workers)
        self.client = client
        self.workers = workers

    async def run(
        self,
        device_ids: Iterable[str],
        payload: UpdatePayload,
    ) -> BatchReport:
        """Dispatch the payload to every device and wait for all of them.

        Args:
            device_ids: Validated identifiers, typically a DeviceListReader
            payload: Immutable payload shared by all workers

        Returns:
            BatchReport with one outcome per identifier

        Raises:
            ConfigurationError: If reading the input fails part way. Devices
                queued before the failure are still processed first.
        """
        report = BatchReport()
        queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=self.workers)

        worker_tasks = [
            asyncio.create_task(self._worker_loop(i, queue, payload, report))
            for i in range(self.workers)
        ]
        logger.info(f"Dispatcher started with {self.workers} workers")

        feeder_error: Optional[BaseException] = None
        try:
            queued = await self._feed(iter(device_ids), queue)
            logger.debug(f"Feeder queued {queued} device(s)")
        except Exception as e:
            feeder_error = e
            logger.error(f"Reading batch input failed, finishing queued devices: {e}")
        finally:
            # Close the queue: one stop marker per worker
            for _ in worker_tasks:
                await queue.put(_STOP)
            await asyncio.gather(*worker_tasks)

        report.completed_at = time.time()
        logger.info(
            f"Dispatch finished: {report.succeeded}/{report.attempted} updated "
            f"in {report.duration_seconds:.1f}s"
        )

        if feeder_error is not None:
            raise feeder_error
        return report

    async def _feed(
        self,
        device_ids: Iterator[str],
        queue: asyncio.Queue[Optional[str]],
    ) -> int:
        """Move identifiers from the reader to the queue.

        Reads happen in a thread so a slow source (e.g. stdin) does not
        block workers waiting on HTTP responses.
        """
        queued = 0
        while True:
            device_id = await asyncio.to_thread(next, device_ids, _STOP)
            if device_id is _STOP:
                return queued
            await queue.put(device_id)
            queued += 1

    async def _worker_loop(
        self,
        worker_id: int,
        queue: asyncio.Queue[Optional[str]],
        payload: UpdatePayload,
        report: BatchReport,
    ) -> None:
        """Pull identifiers until the stop marker; one update at a time."""
        logger.debug(f"Worker {worker_id} started")

        while True:
            device_id = await queue.get()
            if device_id is _STOP:
                break

            logger.debug(f"Updating '{device_id}' in worker {worker_id}")
            outcome = await self._update_one(device_id, payload)
            await report.record(outcome)
            _log_outcome(outcome)

        logger.debug(f"Worker {worker_id} stopped")

    async def _update_one(self, device_id: str, payload: UpdatePayload) -> UpdateOutcome:
        try:
            return await self.client.update(device_id, payload)
        except Exception as e:
            # Keep the worker alive whatever the client does
            logger.exception(f"Unexpected error updating '{device_id}': {e}")
            return TransportError(
                device_id=device_id,
                url=self._profile_url(device_id),
                cause=NetworkError(f"Unexpected error: {e}", cause=e),
            )

    def _profile_url(self, device_id: str) -> str:
        """Profile URL for a device, or a client-id label when the sender has no config."""
        config = getattr(self.client, "config", None)
        if isinstance(config, FleetConfig):
            return config.profile_url(device_id)
        return f"clientId:{device_id}"


def _log_outcome(outcome: UpdateOutcome) -> None:
    if outcome.is_success:
        logger.info(outcome.describe())
    elif isinstance(outcome, MalformedResponse):
        logger.error(outcome.describe())
    else:
        logger.warning(outcome.describe())


# ============================================
# Batch Entry Point
# ============================================

async def batch_update(
    config: FleetConfig,
    reader: DeviceListReader,
    applications: dict[str, str],
) -> BatchReport:
    """Run one complete batch.

    Args:
        config: Endpoint, identity, token and worker count
        reader: Opened device list (header already validated)
        applications: Application id -> version map

    Returns:
        BatchReport including the rows skipped as invalid

    Raises:
        ConfigurationError: If the input cannot be read
    """
    payload = build_payload(applications)
    logger.debug(f"Updating players with:\n{payload.pretty()}")

    async with UpdateClient(config) as client:
        dispatcher = Dispatcher(client, workers=config.workers)
        report = await dispatcher.run(reader, payload)

    report.skipped = list(reader.invalid_rows)
    return report
