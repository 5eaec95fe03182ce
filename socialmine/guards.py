"""Single-flight guards for the exclusive operation classes"""
import asyncio
from contextlib import contextmanager
from typing import Awaitable, Callable, Generic, Hashable, Iterator, Optional, Set, TypeVar

from socialmine.errors import OperationInProgressError

T = TypeVar('T')

class OperationGuard:
    """Busy flag for one operation class; a second acquire is rejected"""

    def __init__(self, name: str):
        self.name = name
        self._held = False

    @property
    def busy(self) -> bool:
        return self._held

    @contextmanager
    def hold(self) -> Iterator[None]:
        """
        Hold the guard for the duration of the block.

        Raises:
            OperationInProgressError: If the guard is already held
        """
        if self._held:
            raise OperationInProgressError(f"{self.name} already in progress")
        self._held = True
        try:
            yield
        finally:
            self._held = False

class KeyedGuard:
    """Per-key busy flags, e.g. one in-flight decryption per record"""

    def __init__(self, name: str):
        self.name = name
        self._held: Set[Hashable] = set()

    @property
    def busy(self) -> bool:
        return bool(self._held)

    def is_held(self, key: Hashable) -> bool:
        return key in self._held

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        if key in self._held:
            raise OperationInProgressError(f"{self.name} already in progress for {key}")
        self._held.add(key)
        try:
            yield
        finally:
            self._held.discard(key)

class RefreshGate(Generic[T]):
    """
    Coalescing single-flight runner.

    The first caller starts the operation. Callers arriving while it runs
    share exactly one follow-up run that starts once the current one is
    done, so every caller observes a run that began after its request.
    """

    def __init__(self, operation: Callable[[], Awaitable[T]]):
        self._operation = operation
        self._current: Optional[asyncio.Future] = None
        self._queued: Optional[asyncio.Future] = None

    @property
    def busy(self) -> bool:
        return self._current is not None

    async def run(self) -> T:
        if self._current is None:
            self._current = asyncio.ensure_future(self._execute())
            target = self._current
        else:
            if self._queued is None:
                self._queued = asyncio.ensure_future(self._execute_after(self._current))
            target = self._queued
        # Callers going away must not cancel a run other callers share
        return await asyncio.shield(target)

    async def _execute(self) -> T:
        try:
            return await self._operation()
        finally:
            self._current, self._queued = self._queued, None

    async def _execute_after(self, previous: asyncio.Future) -> T:
        await asyncio.wait([previous])
        return await self._execute()
