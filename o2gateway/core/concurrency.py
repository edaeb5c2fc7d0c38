"""
O2 Gateway — Concurrency Primitives
====================================
Adapter-owned synchronization used by every backend variant.

- ``ReadWriteLock``: concurrent readers, exclusive writers. Guards the
  in-memory subscription store and other adapter-local maps.
- ``InitGuard``: single-initialization guard for lazily created backend
  client handles. State machine:

      UNINITIALIZED → INITIALIZING → READY
                                   ↘ FAILED → (next call retries)

- ``ensure_not_cancelled`` / ``bounded``: cancellation check before
  backend I/O and a deadline around each backend call.

Nothing here is module-global; every adapter instance owns its own
locks and guards.
"""

from __future__ import annotations

import asyncio
import threading
from contextlib import asynccontextmanager, contextmanager
from enum import StrEnum
from typing import AsyncIterator, Awaitable, Callable, Generic, Iterator, TypeVar

from o2gateway.core.exceptions import DeadlineExceededError
from o2gateway.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ReadWriteLock:
    """Readers proceed concurrently; a writer waits for exclusive access."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class InitState(StrEnum):
    """Lifecycle of a lazily initialized backend handle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class InitGuard(Generic[T]):
    """
    Run an async factory at most once and share the result.

    Concurrent first callers wait on the same lock; only one runs the
    factory. A failed initialization is recorded as ``FAILED`` and the
    next call runs the factory again. ``reset()`` returns the guard to
    ``UNINITIALIZED`` and hands back the previous value for cleanup.
    """

    def __init__(self, factory: Callable[[], Awaitable[T]], name: str) -> None:
        self._factory = factory
        self._name = name
        self._lock = asyncio.Lock()
        self._state = InitState.UNINITIALIZED
        self._value: T | None = None
        self._last_error: Exception | None = None

    @property
    def state(self) -> InitState:
        return self._state

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    async def get(self) -> T:
        """Return the initialized value, initializing on first use."""
        if self._state is InitState.READY:
            return self._value  # type: ignore[return-value]

        async with self._lock:
            if self._state is InitState.READY:
                return self._value  # type: ignore[return-value]

            self._state = InitState.INITIALIZING
            try:
                value = await self._factory()
            except Exception as exc:
                self._state = InitState.FAILED
                self._last_error = exc
                logger.warning(
                    "init_guard.failed", component=self._name, error=str(exc)
                )
                raise
            except BaseException:
                # Cancelled mid-initialization: nothing was built.
                self._state = InitState.UNINITIALIZED
                raise

            self._value = value
            self._last_error = None
            self._state = InitState.READY
            logger.debug("init_guard.ready", component=self._name)
            return value

    async def reset(self) -> T | None:
        """Forget the initialized value and return it to the caller."""
        async with self._lock:
            value = self._value
            self._value = None
            self._state = InitState.UNINITIALIZED
            return value


def ensure_not_cancelled() -> None:
    """Raise ``CancelledError`` when the current task has a pending cancel."""
    task = asyncio.current_task()
    if task is not None and task.cancelling():
        raise asyncio.CancelledError()


@asynccontextmanager
async def bounded(
    seconds: float,
    *,
    backend: str,
    operation: str,
    entity_id: str | None = None,
) -> AsyncIterator[None]:
    """
    Bound a backend call by ``seconds``.

    Expiry is reported as ``DeadlineExceededError``; task cancellation
    passes through untouched.
    """
    ensure_not_cancelled()
    try:
        async with asyncio.timeout(seconds):
            yield
    except TimeoutError as exc:
        raise DeadlineExceededError(
            f"no response within {seconds:g}s",
            backend=backend,
            operation=operation,
            entity_id=entity_id,
        ) from exc
