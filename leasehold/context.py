"""Cancellable, deadline-bearing operation contexts.

Every blocking lock operation takes a ``Context``. Cancelling it, or letting
its deadline pass, aborts waits in ``Lock.lock()`` and stops a watchdog that
was started under it. Contexts can be shared between threads and asyncio
event loops.
"""

import asyncio
import contextlib
import threading
import time
from typing import Callable, List, Optional

from .exceptions import ContextCancelledError, ContextError, DeadlineExceededError
from .models import Duration, to_seconds


class Context:
    """A cancellable operation context with an optional deadline."""

    def __init__(self, timeout: Optional[Duration] = None, parent: Optional["Context"] = None):
        """Create a context.

        Args:
            timeout: Seconds (or timedelta) until the deadline, or None for
                no deadline of its own.
            parent: Context whose cancellation and deadline this one inherits.
        """
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._callbacks: List[Callable[[], None]] = []

        deadline = None
        if timeout is not None:
            deadline = time.monotonic() + to_seconds(timeout, "timeout")
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

        self.parent = parent
        if parent is not None:
            parent.add_done_callback(self.cancel)

    def cancel(self) -> None:
        """Cancel the context and wake everything waiting on it."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        if self.parent is not None:
            self.parent.remove_done_callback(self.cancel)
        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def error(self) -> Optional[ContextError]:
        """The reason the context ended, or None while it is live."""
        if self._cancelled.is_set():
            return ContextCancelledError("context cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceededError("context deadline exceeded")
        return None

    def raise_if_done(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def _bounded(self, seconds: float) -> float:
        remaining = self.remaining()
        if remaining is None:
            return max(0.0, seconds)
        return max(0.0, min(seconds, remaining))

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``; return True if the context ended."""
        self._cancelled.wait(self._bounded(seconds))
        return self.done()

    async def wait_async(self, seconds: float) -> bool:
        """Sleep for up to ``seconds``; return True if the context ended."""
        if self.done():
            return True

        loop = asyncio.get_running_loop()
        woken = asyncio.Event()

        def waker():
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(woken.set)

        self.add_done_callback(waker)
        try:
            await asyncio.wait_for(woken.wait(), self._bounded(seconds))
        except asyncio.TimeoutError:
            pass
        finally:
            self.remove_done_callback(waker)
        return self.done()

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once on cancellation, or now if already cancelled."""
        with self._lock:
            if not self._cancelled.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_done_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cancel()


def background() -> Context:
    """Return a context that is never cancelled and has no deadline."""
    return Context()
