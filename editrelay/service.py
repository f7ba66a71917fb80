"""Application service answering intake requests independent of the socket layer."""

import logging
from typing import Any, Callable, Dict, Optional

from .errors import ClientInputFault, RateLimited, RelayError, StorageFault
from .ports import ActivityBuffer
from .ratelimit import SlidingWindowLimiter
from .wire import IntakeRequest, IntakeResponse, decode_activity, decode_request

logger = logging.getLogger(__name__)

SyncTrigger = Callable[[], Any]


class IntakeService:
    """Dispatches decoded requests to the buffer and the sync trigger."""

    def __init__(
        self,
        buffer: ActivityBuffer,
        machine: str,
        limiter: Optional[SlidingWindowLimiter] = None,
        sync_trigger: Optional[SyncTrigger] = None,
    ):
        self.buffer = buffer
        self.machine = machine
        self.limiter = limiter or SlidingWindowLimiter()
        self.sync_trigger = sync_trigger
        self._handlers: Dict[str, Callable[[IntakeRequest], IntakeResponse]] = {
            "activity": self.handle_activity,
            "ping": self.handle_ping,
            "sync": self.handle_sync,
        }

    def set_sync_trigger(self, trigger: SyncTrigger) -> None:
        self.sync_trigger = trigger

    def handle_line(self, line: bytes) -> IntakeResponse:
        try:
            request = decode_request(line)
        except ClientInputFault as exc:
            logger.debug("intake: rejected line: %s", exc)
            return IntakeResponse(ok=False, error=str(exc))

        handler = self._handlers.get(request.type)
        if handler is None:
            return IntakeResponse(ok=False, error="unknown request type")
        return handler(request)

    def handle_ping(self, request: IntakeRequest) -> IntakeResponse:
        return IntakeResponse(ok=True)

    def handle_activity(self, request: IntakeRequest) -> IntakeResponse:
        try:
            activity = decode_activity(request.data).to_activity(machine=self.machine)
            self.buffer.append(activity)
        except ClientInputFault as exc:
            logger.debug("intake: rejected activity: %s", exc)
            return IntakeResponse(ok=False, error=str(exc))
        except StorageFault as exc:
            logger.error("intake: failed to store activity: %s", exc)
            return IntakeResponse(ok=False, error=str(exc))
        return IntakeResponse(ok=True)

    def handle_sync(self, request: IntakeRequest) -> IntakeResponse:
        if self.sync_trigger is None:
            return IntakeResponse(ok=False, error="sync not available")

        try:
            self.limiter.acquire()
        except RateLimited as exc:
            logger.info("intake: %s", exc)
            return IntakeResponse(ok=False, error=str(exc))

        try:
            self.sync_trigger()
        except RelayError as exc:
            return IntakeResponse(ok=False, error=str(exc))
        return IntakeResponse(ok=True, message="sync complete")
