from __future__ import annotations

import math
import threading
import time
from typing import Callable, List, Optional

from adapters.errors import Cancelled, ContextError, DeadlineExceeded


class Context:
    """Cancellation and deadline carrier passed to the ``*_context`` calls.

    A context never stops anything on its own. Database handles poll ``err()``
    and register ``on_cancel`` callbacks to interrupt in-flight work.
    """

    def __init__(self, deadline: Optional[float] = None):
        self.deadline = deadline
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @classmethod
    def background(cls) -> "Context":
        return cls()

    @classmethod
    def with_timeout(cls, timeout_ms: int) -> "Context":
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        return cls(deadline=time.monotonic() + timeout_ms / 1000.0)

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining_ms(self) -> Optional[int]:
        if self.deadline is None:
            return None
        return max(0, math.ceil((self.deadline - time.monotonic()) * 1000))

    def err(self) -> Optional[ContextError]:
        if self._cancelled.is_set():
            return Cancelled("context cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceeded("context deadline exceeded")
        return None

    def check(self) -> None:
        error = self.err()
        if error is not None:
            raise error

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` when the context is cancelled; returns an unregister function."""
        with self._lock:
            if not self._cancelled.is_set():
                self._callbacks.append(callback)
                registered = True
            else:
                registered = False
        if not registered:
            callback()
            return lambda: None

        def unregister() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unregister
