"""Transient status notifications consumed by the presentation layer"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

class NotificationKind(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"

@dataclass(frozen=True)
class NotificationState:
    """What the status toast currently shows"""
    visible: bool = False
    kind: NotificationKind = NotificationKind.PENDING
    message: str = ""

HIDDEN = NotificationState()

Listener = Callable[[NotificationState], None]

class Notifier:
    """
    Single-slot notification state machine.

    Hidden -> Pending -> (Success | Error) -> Hidden. Pending stays until the
    next transition; success and error hide themselves after a delay. Any
    transition cancels the hide scheduled by the previous one.
    """

    def __init__(self, success_delay: float = 2.0, error_delay: float = 3.0):
        self.success_delay = success_delay
        self.error_delay = error_delay
        self._state = HIDDEN
        self._hide_handle: Optional[asyncio.TimerHandle] = None
        self._listeners: List[Listener] = []

    @property
    def state(self) -> NotificationState:
        return self._state

    @property
    def hide_scheduled(self) -> bool:
        return self._hide_handle is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state listener; returns a callable that unsubscribes it"""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def pending(self, message: str) -> None:
        self._transition(NotificationState(True, NotificationKind.PENDING, message), None)

    def success(self, message: str) -> None:
        self._transition(NotificationState(True, NotificationKind.SUCCESS, message), self.success_delay)

    def error(self, message: str) -> None:
        self._transition(NotificationState(True, NotificationKind.ERROR, message), self.error_delay)

    def hide(self) -> None:
        self._transition(HIDDEN, None)

    def _transition(self, state: NotificationState, hide_after: Optional[float]) -> None:
        self._cancel_hide()
        self._state = state
        if hide_after is not None:
            loop = asyncio.get_running_loop()
            self._hide_handle = loop.call_later(hide_after, self._auto_hide)
        self._emit()

    def _auto_hide(self) -> None:
        self._hide_handle = None
        self._state = HIDDEN
        self._emit()

    def _cancel_hide(self) -> None:
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}")
