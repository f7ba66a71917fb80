"""Batch forwarding of buffered activities to the remote collector."""

import logging
import threading
from typing import Optional, Sequence

import requests
from pydantic import ValidationError
from requests import Session

from .errors import NoCredential, StorageFault, SyncInProgress, TransientFault
from .models import Activity
from .ports import ActivityBuffer
from .wire import ActivityPayload, SyncRequest, SyncResponse

logger = logging.getLogger(__name__)

ACTIVITIES_PATH = "/api/activities"
DEFAULT_MIN_BACKOFF = 30.0
DEFAULT_MAX_BACKOFF = 30 * 60.0
DEFAULT_SYNC_WAIT = 5.0


class Backoff:
    """Delay between consecutive failed attempts, in seconds.

    The first failure waits ``minimum``; every further consecutive failure
    doubles the wait up to ``maximum``. ``reset`` clears the streak.
    """

    def __init__(self, minimum: float, maximum: float):
        self.minimum = minimum
        self.maximum = maximum
        self.current = 0.0

    def increase(self) -> float:
        if self.current == 0:
            self.current = self.minimum
        else:
            self.current = min(self.current * 2, self.maximum)
        return self.current

    def reset(self) -> None:
        self.current = 0.0


class Forwarder:
    """Drains the buffer to ``{server_url}/api/activities`` in bounded batches.

    ``run`` drives the periodic loop and blocks until ``stop`` is called;
    ``sync_now`` is the on-demand entry point used by the intake socket.
    """

    def __init__(
        self,
        buffer: ActivityBuffer,
        server_url: str,
        api_token: str,
        interval: float = 600.0,
        batch_size: int = 100,
        metrics_only: bool = False,
        min_backoff: float = DEFAULT_MIN_BACKOFF,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        session: Optional[Session] = None,
        timeout: Optional[float] = None,
        sync_wait: float = DEFAULT_SYNC_WAIT,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.buffer = buffer
        self.server_url = server_url.rstrip("/")
        self.api_token = api_token
        self.interval = interval
        self.batch_size = batch_size
        self.metrics_only = metrics_only
        self.min_backoff = min_backoff
        self.max_backoff = max_backoff
        self.timeout = timeout
        self.sync_wait = sync_wait
        self._session: Session = session or requests.Session()
        self._shutdown = threading.Event()
        # One drain at a time; otherwise a tick and a manual sync would send the same batch.
        self._drain_lock = threading.Lock()

    def run(self) -> None:
        """Drain now, then on every tick, then once more after ``stop``."""
        self.drain_backlog()
        while not self._shutdown.wait(self.interval):
            self.drain_backlog()
        logger.info("sync: shutting down, final flush")
        self.drain_backlog()

    def stop(self) -> None:
        self._shutdown.set()

    @property
    def stopping(self) -> bool:
        return self._shutdown.is_set()

    def sync_now(self) -> int:
        """Drain on request, giving up after ``sync_wait`` seconds if another drain holds the lock."""
        if not self.api_token:
            raise NoCredential()
        return self.drain_backlog(lock_timeout=self.sync_wait)

    def drain_backlog(self, lock_timeout: float = -1) -> int:
        """Forward batches until the buffer is empty or shutdown interrupts a backoff.

        Returns the number of activities forwarded by this call. A non-negative
        ``lock_timeout`` bounds the wait for a concurrent drain and raises
        ``SyncInProgress`` when it runs out.
        """
        if not self.api_token:
            logger.info("sync: no API token configured, skipping")
            return 0

        if not self._drain_lock.acquire(timeout=lock_timeout):
            raise SyncInProgress()
        try:
            return self._drain()
        finally:
            self._drain_lock.release()

    def _drain(self) -> int:
        backoff = Backoff(self.min_backoff, self.max_backoff)
        forwarded = 0
        while True:
            try:
                batch = self.buffer.unconsumed(self.batch_size)
                if not batch:
                    return forwarded
                self.forward_batch(batch)
            except (StorageFault, TransientFault) as exc:
                delay = backoff.increase()
                logger.warning("sync: error (retrying in %.3gs): %s", delay, exc)
                if self._shutdown.wait(delay):
                    return forwarded
                continue

            backoff.reset()
            forwarded += len(batch)
            if len(batch) < self.batch_size:
                return forwarded

    def forward_batch(self, activities: Sequence[Activity]) -> None:
        """Send one batch and mark it consumed; raises ``TransientFault`` on any failure."""
        logger.info("sync: syncing %d activities", len(activities))
        body = SyncRequest(
            activities=[
                ActivityPayload.from_activity(activity, metrics_only=self.metrics_only)
                for activity in activities
            ]
        ).to_wire()

        try:
            response = self._session.post(
                f"{self.server_url}{ACTIVITIES_PATH}",
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_token}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransientFault(f"request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise TransientFault(f"server returned status {response.status_code}")

        try:
            result = SyncResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise TransientFault(f"decode response: {exc.error_count()} validation error(s)") from exc

        if not result.success:
            raise TransientFault("server returned success=false")

        try:
            self.buffer.mark_consumed([activity.id for activity in activities if activity.id is not None])
        except StorageFault as exc:
            # The collector already has the batch; a retry is deduplicated by clientUUID.
            raise TransientFault(f"mark as consumed: {exc}") from exc

        logger.info("sync: successfully synced %d activities", len(activities))
