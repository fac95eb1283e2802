"""Race stopwatch producing epoch-millisecond finish timestamps."""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Optional

from race_control.errors import NotRunningError, ValidationError


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


def race_time(start_time: int, finish_time: int) -> int:
    """Return ``finish_time - start_time``.

    Raises:
        ValidationError: If the result is negative. A negative race time
            means the clock or the event ordering is broken, so it is never
            clamped to zero.
    """
    elapsed = finish_time - start_time
    if elapsed < 0:
        raise ValidationError(
            f"Negative race time ({elapsed}ms): finish {finish_time} precedes start {start_time}"
        )
    return elapsed


def format_race_time(time_ms: Optional[int]) -> str:
    """Format a duration using the largest applicable units.

    Examples: '0s', '59s', '1m 5s', '1h 0m 0s'
    """
    if time_ms is None:
        return "N/A"

    total_seconds = int(time_ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_clock(time_ms: int) -> str:
    """Format a duration as a stopwatch display (HH:MM:SS)."""
    total_seconds = max(int(time_ms), 0) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class RaceTimer:
    """Stopwatch state machine: IDLE -> RUNNING -> STOPPED.

    STOPPED is terminal for the current race; ``reset()`` returns to IDLE
    when control switches to another race.
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self.state = TimerState.IDLE
        self.start_time: Optional[int] = None
        self.stop_time: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self.state is TimerState.RUNNING

    def start(self, start_time: Optional[int] = None) -> int:
        """Enter RUNNING and return the race start time.

        An explicit ``start_time`` (e.g. restored from the remote authority)
        is adopted as-is. Starting a running or stopped timer is a no-op;
        only ``reset()`` leaves STOPPED.
        """
        if self.state is not TimerState.IDLE and self.start_time is not None:
            return self.start_time

        self.start_time = int(start_time) if start_time is not None else self._clock()
        self.stop_time = None
        self.state = TimerState.RUNNING
        return self.start_time

    def record_finish(self) -> int:
        """Capture the current time as a finish timestamp."""
        if self.state is not TimerState.RUNNING:
            raise NotRunningError("Race timer not running")
        return self._clock()

    def stop(self, stop_time: Optional[int] = None) -> None:
        """Enter STOPPED. ``stop_time`` only freezes the elapsed display."""
        if self.state is not TimerState.RUNNING:
            return
        self.stop_time = int(stop_time) if stop_time is not None else self._clock()
        self.state = TimerState.STOPPED

    def reset(self) -> None:
        self.state = TimerState.IDLE
        self.start_time = None
        self.stop_time = None

    def race_time(self, finish_time: int) -> int:
        """Race time of a finish captured by this timer."""
        if self.start_time is None:
            raise NotRunningError("Race timer has no start time")
        return race_time(self.start_time, finish_time)

    def elapsed(self) -> int:
        """Current running time; frozen at the stop instant once stopped."""
        if self.start_time is None:
            return 0
        if self.state is TimerState.STOPPED and self.stop_time is not None:
            return max(self.stop_time - self.start_time, 0)
        return max(self._clock() - self.start_time, 0)
