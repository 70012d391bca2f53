"""Distributed lock handles."""

import asyncio
import contextlib
import threading
import time
from typing import Optional

from .context import Context, background
from .exceptions import LeaseholdError, LockLostError, LockNotHeldError, LockTimeoutError, StoreError
from .logger import Logger, StandardLogger
from .models import RETRY_INTERVAL, LockOptions, LockState
from .scripts import AsyncLockScripts, LockScripts
from .token import generate_token


class Lock:
    """A Redis-backed distributed lock handle.

    The handle generates a random token once and uses it as its only proof
    of ownership. Operations on one handle, including watchdog refreshes, are
    serialized by a per-handle mutex; exclusion between handles is enforced
    by Redis alone.

    Locks are not reentrant: ``try_lock`` on a handle that already holds the
    lock returns False like any other contender.

    With ``watchdog`` enabled, a successful acquisition starts a daemon
    thread that refreshes the lease every ``watchdog_timeout / 3`` seconds.
    It runs only as long as the context passed to the acquiring call stays
    live; keep that context alive for as long as auto-renewal is wanted.
    """

    def __init__(
        self,
        scripts: LockScripts,
        name: str,
        options: Optional[LockOptions] = None,
        logger: Optional[Logger] = None,
    ):
        self.name = name
        self.options = options or LockOptions()
        self.logger = logger or StandardLogger()
        self._scripts = scripts
        self._token = generate_token()
        self._state = LockState.IDLE

        self._mu = threading.Lock()
        self._watchdog_thread: Optional[threading.Thread] = None
        self._watchdog_stop: Optional[threading.Event] = None

    @property
    def token(self) -> str:
        return self._token

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def watchdog_running(self) -> bool:
        thread = self._watchdog_thread
        return thread is not None and thread.is_alive()

    def lock(self, ctx: Optional[Context] = None) -> None:
        """Acquire the lock, polling until it is free.

        Raises:
            LockTimeoutError: ``wait_timeout`` is set and elapsed first.
            ContextCancelledError: ``ctx`` was cancelled while waiting.
            DeadlineExceededError: ``ctx`` hit its deadline while waiting.
            LockLostError: This handle already lost the lock.
            StoreError: Redis could not be reached.
        """
        ctx = ctx or background()
        wait_timeout = self.options.wait_timeout
        deadline = time.monotonic() + wait_timeout
        self.logger.debug(ctx, "Attempting to acquire lock: %s", self.name)

        while True:
            try:
                acquired = self.try_lock(ctx)
            except StoreError as e:
                self.logger.error(ctx, "Failed to acquire lock: %s, error: %s", self.name, e)
                raise
            if acquired:
                self.logger.info(ctx, "Acquired lock: %s", self.name)
                return

            delay = RETRY_INTERVAL
            if wait_timeout > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self.logger.warn(ctx, "Timed out waiting for lock: %s", self.name)
                    raise LockTimeoutError(f"Timed out waiting for lock '{self.name}'", name=self.name)
                delay = min(delay, remaining)

            if ctx.wait(delay):
                self.logger.debug(ctx, "Context ended while waiting for lock: %s", self.name)
                ctx.raise_if_done()

    def try_lock(self, ctx: Optional[Context] = None) -> bool:
        """Attempt to acquire the lock once.

        Returns:
            True if acquired, False if another token holds it.
        """
        ctx = ctx or background()
        with self._mu:
            ctx.raise_if_done()
            if self._state is LockState.LOST:
                raise LockLostError(f"Lock '{self.name}' was lost; create a new handle", name=self.name)

            try:
                acquired = self._scripts.try_lock(self.name, self._token, self.options.effective_lease_ms)
            except StoreError:
                self.logger.error(ctx, "Error trying to acquire lock: %s", self.name)
                raise
            if not acquired:
                return False

            self._state = LockState.HELD
            if self.options.watchdog:
                self._start_watchdog(ctx)
            return True

    def unlock(self, ctx: Optional[Context] = None) -> None:
        """Stop the watchdog and release the lock.

        Raises:
            LockNotHeldError: The record was gone or owned by another token.
        """
        ctx = ctx or background()
        ctx.raise_if_done()
        self.logger.debug(ctx, "Releasing lock: %s", self.name)
        self._stop_watchdog()

        with self._mu:
            try:
                released = self._scripts.unlock(self.name, self._token)
            except StoreError:
                self.logger.error(ctx, "Error releasing lock: %s", self.name)
                raise
            if not released:
                self._mark_lost()
                raise LockNotHeldError(f"Lock '{self.name}' is not held", name=self.name)
            self._state = LockState.IDLE

        self.logger.info(ctx, "Released lock: %s", self.name)

    def refresh(self, ctx: Optional[Context] = None) -> None:
        """Reset the lease to its full effective duration.

        Raises:
            LockNotHeldError: The record was gone or owned by another token.
        """
        ctx = ctx or background()
        with self._mu:
            ctx.raise_if_done()
            self._refresh_locked(ctx)

    def _refresh_locked(self, ctx: Context) -> None:
        try:
            refreshed = self._scripts.refresh(self.name, self._token, self.options.effective_lease_ms)
        except StoreError:
            self.logger.error(ctx, "Error refreshing lock: %s", self.name)
            raise
        if not refreshed:
            self._mark_lost()
            raise LockNotHeldError(f"Lock '{self.name}' is not held", name=self.name)

    def _mark_lost(self) -> None:
        if self._state is LockState.HELD:
            self._state = LockState.LOST

    def _start_watchdog(self, ctx: Context) -> None:
        # Caller holds self._mu. A thread left over from an earlier
        # context has exited and is replaced.
        if self.watchdog_running:
            return

        stop = threading.Event()
        ctx.add_done_callback(stop.set)
        self._watchdog_stop = stop
        self._watchdog_thread = threading.Thread(
            target=self._watchdog_loop,
            args=(ctx, stop),
            daemon=True,
            name=f"leasehold-watchdog-{self.name}",
        )
        self.logger.debug(ctx, "Starting watchdog for lock: %s", self.name)
        self._watchdog_thread.start()

    def _stop_watchdog(self) -> None:
        with self._mu:
            thread = self._watchdog_thread
            stop = self._watchdog_stop
        if thread is None:
            return

        stop.set()
        if thread is not threading.current_thread():
            thread.join()

        with self._mu:
            if self._watchdog_thread is thread:
                self._watchdog_thread = None
                self._watchdog_stop = None

    def _watchdog_loop(self, ctx: Context, stop: threading.Event) -> None:
        interval = self.options.watchdog_interval
        try:
            while True:
                timeout = interval
                remaining = ctx.remaining()
                if remaining is not None:
                    timeout = min(timeout, remaining)
                if stop.wait(timeout) or ctx.done():
                    break

                with self._mu:
                    # unlock() raised the stop signal while we waited.
                    if stop.is_set():
                        break
                    try:
                        self._refresh_locked(ctx)
                    except LeaseholdError as e:
                        self._state = LockState.LOST
                        self.logger.error(ctx, "Watchdog failed to refresh lock: %s, error: %s", self.name, e)
                        break
        finally:
            ctx.remove_done_callback(stop.set)
            self.logger.debug(ctx, "Watchdog stopped for lock: %s", self.name)

    def __enter__(self):
        self.lock()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.unlock()
            return
        # Keep the body's exception; a lost lock is only logged.
        try:
            self.unlock()
        except LockNotHeldError:
            self.logger.warn(background(), "Lock was not held on exit: %s", self.name)

    def __repr__(self):
        return f"Lock(name={self.name!r}, state={self._state.value!r})"


class AsyncLock:
    """Asyncio twin of ``Lock``.

    Same semantics, with an ``asyncio.Lock`` as the per-handle mutex and an
    ``asyncio.Task`` as the watchdog. Cancelling the task awaiting ``lock()``
    aborts the wait as well as cancelling ``ctx``.
    """

    def __init__(
        self,
        scripts: AsyncLockScripts,
        name: str,
        options: Optional[LockOptions] = None,
        logger: Optional[Logger] = None,
    ):
        self.name = name
        self.options = options or LockOptions()
        self.logger = logger or StandardLogger()
        self._scripts = scripts
        self._token = generate_token()
        self._state = LockState.IDLE

        self._mu = asyncio.Lock()
        self._watchdog_task: Optional[asyncio.Task] = None
        self._watchdog_stop: Optional[asyncio.Event] = None

    @property
    def token(self) -> str:
        return self._token

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def watchdog_running(self) -> bool:
        task = self._watchdog_task
        return task is not None and not task.done()

    async def lock(self, ctx: Optional[Context] = None) -> None:
        """Acquire the lock, polling until it is free."""
        ctx = ctx or background()
        wait_timeout = self.options.wait_timeout
        deadline = time.monotonic() + wait_timeout
        self.logger.debug(ctx, "Attempting to acquire lock: %s", self.name)

        while True:
            try:
                acquired = await self.try_lock(ctx)
            except StoreError as e:
                self.logger.error(ctx, "Failed to acquire lock: %s, error: %s", self.name, e)
                raise
            if acquired:
                self.logger.info(ctx, "Acquired lock: %s", self.name)
                return

            delay = RETRY_INTERVAL
            if wait_timeout > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self.logger.warn(ctx, "Timed out waiting for lock: %s", self.name)
                    raise LockTimeoutError(f"Timed out waiting for lock '{self.name}'", name=self.name)
                delay = min(delay, remaining)

            if await ctx.wait_async(delay):
                self.logger.debug(ctx, "Context ended while waiting for lock: %s", self.name)
                ctx.raise_if_done()

    async def try_lock(self, ctx: Optional[Context] = None) -> bool:
        """Attempt to acquire the lock once."""
        ctx = ctx or background()
        async with self._mu:
            ctx.raise_if_done()
            if self._state is LockState.LOST:
                raise LockLostError(f"Lock '{self.name}' was lost; create a new handle", name=self.name)

            try:
                acquired = await self._scripts.try_lock(self.name, self._token, self.options.effective_lease_ms)
            except StoreError:
                self.logger.error(ctx, "Error trying to acquire lock: %s", self.name)
                raise
            except asyncio.CancelledError:
                # Redis may have run the script before the cancel landed.
                if self._state is not LockState.HELD:
                    with contextlib.suppress(StoreError):
                        await asyncio.shield(self._scripts.unlock(self.name, self._token))
                raise
            if not acquired:
                return False

            self._state = LockState.HELD
            if self.options.watchdog:
                self._start_watchdog(ctx)
            return True

    async def unlock(self, ctx: Optional[Context] = None) -> None:
        """Stop the watchdog and release the lock."""
        ctx = ctx or background()
        ctx.raise_if_done()
        self.logger.debug(ctx, "Releasing lock: %s", self.name)
        await self._stop_watchdog()

        async with self._mu:
            try:
                released = await self._scripts.unlock(self.name, self._token)
            except StoreError:
                self.logger.error(ctx, "Error releasing lock: %s", self.name)
                raise
            if not released:
                self._mark_lost()
                raise LockNotHeldError(f"Lock '{self.name}' is not held", name=self.name)
            self._state = LockState.IDLE

        self.logger.info(ctx, "Released lock: %s", self.name)

    async def refresh(self, ctx: Optional[Context] = None) -> None:
        """Reset the lease to its full effective duration."""
        ctx = ctx or background()
        async with self._mu:
            ctx.raise_if_done()
            await self._refresh_locked(ctx)

    async def _refresh_locked(self, ctx: Context) -> None:
        try:
            refreshed = await self._scripts.refresh(self.name, self._token, self.options.effective_lease_ms)
        except StoreError:
            self.logger.error(ctx, "Error refreshing lock: %s", self.name)
            raise
        if not refreshed:
            self._mark_lost()
            raise LockNotHeldError(f"Lock '{self.name}' is not held", name=self.name)

    def _mark_lost(self) -> None:
        if self._state is LockState.HELD:
            self._state = LockState.LOST

    def _start_watchdog(self, ctx: Context) -> None:
        # Caller holds self._mu. A task left over from an earlier
        # context has finished and is replaced.
        if self.watchdog_running:
            return

        loop = asyncio.get_running_loop()
        stop = asyncio.Event()

        def wake():
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stop.set)

        ctx.add_done_callback(wake)
        self._watchdog_stop = stop
        self.logger.debug(ctx, "Starting watchdog for lock: %s", self.name)
        self._watchdog_task = loop.create_task(
            self._watchdog_loop(ctx, stop, wake),
            name=f"leasehold-watchdog-{self.name}",
        )

    async def _stop_watchdog(self) -> None:
        async with self._mu:
            task = self._watchdog_task
            stop = self._watchdog_stop
        if task is None:
            return

        stop.set()
        if task is not asyncio.current_task():
            await asyncio.wait({task})

        async with self._mu:
            if self._watchdog_task is task:
                self._watchdog_task = None
                self._watchdog_stop = None

    async def _watchdog_loop(self, ctx: Context, stop: asyncio.Event, wake) -> None:
        interval = self.options.watchdog_interval
        try:
            while True:
                timeout = interval
                remaining = ctx.remaining()
                if remaining is not None:
                    timeout = min(timeout, remaining)
                try:
                    await asyncio.wait_for(stop.wait(), timeout)
                    break
                except asyncio.TimeoutError:
                    pass
                if ctx.done():
                    break

                async with self._mu:
                    # unlock() raised the stop signal while we waited.
                    if stop.is_set():
                        break
                    try:
                        await self._refresh_locked(ctx)
                    except LeaseholdError as e:
                        self._state = LockState.LOST
                        self.logger.error(ctx, "Watchdog failed to refresh lock: %s, error: %s", self.name, e)
                        break
        finally:
            ctx.remove_done_callback(wake)
            self.logger.debug(ctx, "Watchdog stopped for lock: %s", self.name)

    async def __aenter__(self):
        await self.lock()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            await self.unlock()
            return
        # Keep the body's exception; a lost lock is only logged.
        try:
            await self.unlock()
        except LockNotHeldError:
            self.logger.warn(background(), "Lock was not held on exit: %s", self.name)

    def __repr__(self):
        return f"AsyncLock(name={self.name!r}, state={self._state.value!r})"
