"""
Pending request table.

Correlates handler events with their ``evt-res`` responses. Each entry is a
future plus an explicit deadline; an entry is removed by the first of
``settle`` or ``expire``, so every future is settled at most once. The clock
is injectable so timeout precedence can be tested without sleeping.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..core.errors import EventResponseError, RequestTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    key: str
    future: asyncio.Future
    deadline: float
    timeout_ms: int
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class PendingRequests:
    """Pending requests keyed by correlation id"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._requests: Dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, key: str) -> bool:
        return key in self._requests

    def add(self, key: str, future: asyncio.Future, timeout_ms: int) -> PendingRequest:
        if key in self._requests:
            raise ValueError(f"Request {key!r} is already pending")
        request = PendingRequest(
            key=key,
            future=future,
            deadline=self._clock() + timeout_ms / 1000,
            timeout_ms=timeout_ms,
        )
        self._requests[key] = request
        return request

    def settle(self, key: str, ok: bool, payload: Any) -> bool:
        """
        Resolve or reject the request for ``key``.

        Returns:
            False when no request is pending (already timed out or duplicate)
        """
        request = self._requests.pop(key, None)
        if request is None:
            return False
        request.cancel_timer()
        if request.future.done():
            return True
        if ok:
            request.future.set_result(payload)
        else:
            request.future.set_exception(EventResponseError(payload))
        return True

    def expire(self, now: Optional[float] = None) -> List[str]:
        """Reject every request whose deadline has passed; returns their keys."""
        now = self._clock() if now is None else now
        expired = [key for key, request in self._requests.items() if request.deadline <= now]
        for key in expired:
            request = self._requests.pop(key)
            request.cancel_timer()
            if not request.future.done():
                request.future.set_exception(RequestTimeoutError(key, request.timeout_ms))
            logger.debug(f"Request {key} timed out after {request.timeout_ms}ms")
        return expired

    def reject_all(self, error: BaseException) -> int:
        """Reject and drop every pending request"""
        requests = list(self._requests.values())
        self._requests.clear()
        for request in requests:
            request.cancel_timer()
            if not request.future.done():
                request.future.set_exception(error)
        return len(requests)

    def next_deadline(self) -> Optional[float]:
        if not self._requests:
            return None
        return min(request.deadline for request in self._requests.values())
