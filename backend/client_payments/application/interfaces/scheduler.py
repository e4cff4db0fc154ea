"""Timer port used by the client sync coordinator."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any


class TimerHandle(ABC):
    """A pending callback that can be cancelled before it fires."""

    @abstractmethod
    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    """Port for deferred and background execution.

    Injected so the coordinator can be driven by a manual clock in tests.
    """

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds."""
        ...

    @abstractmethod
    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run a coroutine in the background."""
        ...
