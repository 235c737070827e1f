"""Key-scoped in-flight call registry.

The first caller for a key runs the work; callers arriving while it is still
running wait on the same future and receive its result or exception.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


class InFlightRegistry:
    def __init__(self, wait_timeout: Optional[float] = None):
        self._calls: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._wait_timeout = wait_timeout

    def run(self, key: str, fn: Callable[[], T]) -> tuple[T, bool]:
        """Run ``fn`` once per concurrent burst for ``key``.

        Returns ``(result, shared)`` where ``shared`` is true for callers that
        waited on another caller's work.
        """
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            return future.result(timeout=self._wait_timeout), True

        try:
            result = fn()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            with self._lock:
                self._calls.pop(key, None)

    def in_flight(self) -> int:
        with self._lock:
            return len(self._calls)
