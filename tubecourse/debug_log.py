"""Recent engine events (strategy outcomes, skipped videos, imports) for the dashboard."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, NamedTuple

MAX_LINES = 20


class Event(NamedTuple):
    at: float
    message: str

    def format(self) -> str:
        return f"{time.strftime('%H:%M:%S', time.localtime(self.at))} {self.message}"


class EventLog:
    """Bounded event buffer; usable directly as a resolver ``on_event`` callback."""

    def __init__(self, max_lines: int = MAX_LINES, clock: Callable[[], float] = time.time) -> None:
        self._events: deque[Event] = deque(maxlen=max_lines)
        self._lock = threading.Lock()
        self._clock = clock

    def __call__(self, message: str) -> None:
        self.add(message)

    def add(self, message: str) -> None:
        with self._lock:
            self._events.append(Event(self._clock(), message))

    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def lines(self) -> list[str]:
        """Formatted lines, oldest first."""
        return [event.format() for event in self.events()]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


# Shared by the web thread and the import loop
events = EventLog()


def add(msg: str) -> None:
    events.add(msg)


def get_lines() -> list[str]:
    return events.lines()


def clear() -> None:
    events.clear()
