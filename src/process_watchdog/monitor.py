"""Per-target monitoring engine."""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .processes import (
    ProcessGoneError,
    ProcessHandle,
    ProcessTable,
    TerminationDeniedError,
    TerminationTimeoutError,
)

logger = logging.getLogger("process-watchdog")


@dataclass
class MonitorEvent:
    """Something an entry did or observed during a check cycle."""

    BOUND = "bound"
    EXITED = "exited"
    KILLED = "killed"
    KILL_FAILED = "kill_failed"
    ERROR = "error"

    event_type: str
    pattern: str
    message: str
    process: Optional[ProcessHandle] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "event_type": self.event_type,
            "pattern": self.pattern,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "process": {
                "pid": self.process.pid,
                "name": self.process.name,
                "started_at": self.process.started_at.isoformat(),
            }
            if self.process
            else None,
            "error": self.error,
        }


@dataclass
class MonitorStatus:
    """Read-only view of an entry for display."""

    pattern: str
    frequency: float
    max_lifetime: float
    running: bool
    pid: Optional[int] = None
    name: Optional[str] = None
    started_at: Optional[datetime] = None
    uptime_seconds: Optional[float] = None

    @property
    def bound(self) -> bool:
        return self.pid is not None

    @property
    def display_name(self) -> str:
        return self.name if self.name else self.pattern


def _positive(value: float, what: str) -> float:
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{what} must be a positive number, got {value}")
    return value


class MonitorEntry:
    """Watch one target and kill it once it outlives ``max_lifetime``.

    The entry owns a background thread that repeatedly snapshots the process
    table, binds to the single process matching ``pattern`` when unbound, and
    terminates the bound process when its running time exceeds
    ``max_lifetime`` seconds. If the bound process goes away the entry falls
    back to searching for a replacement.

    Args:
        pattern: Regular expression (or plain name) matched against process
            names, case-insensitively.
        frequency: Checks per minute.
        max_lifetime: Maximum running time in seconds.
        process: Already resolved process to bind to, if any.
        table: Process table to use. A live :class:`ProcessTable` by default.
        clock: Returns the current time in epoch seconds.
        on_event: Called with every :class:`MonitorEvent`, from the loop thread.
        is_claimed: Returns True for PIDs that must not be auto-bound.
        start: Start the loop immediately.
    """

    def __init__(
        self,
        pattern: str,
        frequency: float,
        max_lifetime: float,
        process: Optional[ProcessHandle] = None,
        *,
        table: Optional[ProcessTable] = None,
        clock: Callable[[], float] = time.time,
        on_event: Optional[Callable[[MonitorEvent], None]] = None,
        is_claimed: Optional[Callable[[int], bool]] = None,
        start: bool = True,
    ):
        if not pattern:
            raise ValueError("Search pattern cannot be empty")
        try:
            self._regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid pattern '{pattern}': {e}") from e

        self._pattern = pattern
        self._frequency = _positive(frequency, "Frequency")
        self._max_lifetime = _positive(max_lifetime, "Max lifetime")
        self.process = process

        self.table = table or ProcessTable()
        self.clock = clock
        self.on_event = on_event
        self.is_claimed = is_claimed

        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

        if start:
            self.start()

    def __repr__(self) -> str:
        return (
            f"MonitorEntry(pattern={self._pattern!r}, frequency={self._frequency}, "
            f"max_lifetime={self._max_lifetime}, process={self.process})"
        )

    @property
    def pattern(self) -> str:
        return self._pattern

    @property
    def frequency(self) -> float:
        """Checks per minute."""
        return self._frequency

    @frequency.setter
    def frequency(self, value: float):
        self._frequency = _positive(value, "Frequency")

    @property
    def max_lifetime(self) -> float:
        """Maximum running time in seconds."""
        return self._max_lifetime

    @max_lifetime.setter
    def max_lifetime(self, value: float):
        self._max_lifetime = _positive(value, "Max lifetime")

    @property
    def interval(self) -> float:
        """Seconds to wait between checks."""
        return 60.0 / self._frequency

    @property
    def running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop_event.is_set()
        )

    def matches(self, regex: re.Pattern) -> bool:
        """Check the bound process name or the search pattern against ``regex``."""
        process = self.process
        if process is not None and regex.search(process.name):
            return True
        return regex.search(self._pattern) is not None

    def start(self):
        """Start the check loop. Does nothing if it is already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"monitor[{self._pattern}]",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Signal the loop to exit.

        Safe to call more than once and from the loop thread itself. With a
        ``timeout`` the call also waits up to that many seconds for the loop
        to finish.
        """
        self._stop_event.set()
        if timeout is not None:
            self.join(timeout)

    def join(self, timeout: Optional[float] = None):
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        logger.debug(f"Monitor for '{self._pattern}' started (every {self.interval:.1f}s)")
        while not self._stop_event.is_set():
            try:
                self.check()
            except Exception as e:
                logger.exception(f"Check cycle for '{self._pattern}' failed")
                self._emit(
                    MonitorEvent(
                        event_type=MonitorEvent.ERROR,
                        pattern=self._pattern,
                        message="Check cycle failed",
                        process=self.process,
                        error=str(e),
                    )
                )
            if self._stop_event.wait(self.interval):
                break
        logger.debug(f"Monitor for '{self._pattern}' stopped")

    def check(self) -> Optional[MonitorEvent]:
        """Run a single check cycle and return the event it produced, if any."""
        with self._cycle_lock:
            snapshot = self.table.snapshot()
            if self.process is None:
                return self._resolve(snapshot)
            return self._age(self.process)

    def _resolve(self, snapshot: list[ProcessHandle]) -> Optional[MonitorEvent]:
        matches = [
            h
            for h in snapshot
            if self._regex.search(h.name)
            and not (self.is_claimed and self.is_claimed(h.pid))
        ]
        if len(matches) != 1:
            logger.debug(
                f"'{self._pattern}' matched {len(matches)} processes, staying unbound"
            )
            return None

        self.process = matches[0]
        logger.info(f"Process {self.process} automatically bound to '{self._pattern}'")
        return self._emit(
            MonitorEvent(
                event_type=MonitorEvent.BOUND,
                pattern=self._pattern,
                message=f"Process {self.process} automatically added",
                process=self.process,
            )
        )

    def _age(self, process: ProcessHandle) -> Optional[MonitorEvent]:
        if not self.table.is_running(process):
            return self._lost(process)

        elapsed = self.clock() - process.start_time
        if elapsed <= self._max_lifetime:
            return None

        try:
            self.table.terminate(process)
        except ProcessGoneError:
            return self._lost(process)
        except (TerminationDeniedError, TerminationTimeoutError) as e:
            logger.error(f"Can't kill {process}: {e}")
            return self._emit(
                MonitorEvent(
                    event_type=MonitorEvent.KILL_FAILED,
                    pattern=self._pattern,
                    message=f"Failed to kill {process}, will retry next check",
                    process=process,
                    error=str(e),
                )
            )

        self.process = None
        logger.info(
            f"Process {process} killed after {elapsed:.0f}s "
            f"(max lifetime {self._max_lifetime:g}s)"
        )
        return self._emit(
            MonitorEvent(
                event_type=MonitorEvent.KILLED,
                pattern=self._pattern,
                message=f"Process {process} killed after running {elapsed:.0f}s",
                process=process,
            )
        )

    def _lost(self, process: ProcessHandle) -> MonitorEvent:
        self.process = None
        logger.info(f"Process {process} for '{self._pattern}' closed by third party")
        return self._emit(
            MonitorEvent(
                event_type=MonitorEvent.EXITED,
                pattern=self._pattern,
                message=f"Process {process} closed by third party",
                process=process,
            )
        )

    def _emit(self, event: MonitorEvent) -> MonitorEvent:
        if self.on_event is not None:
            try:
                self.on_event(event)
            except Exception:
                logger.exception(f"Event handler failed for {event.event_type}")
        return event

    def status(self) -> MonitorStatus:
        """Snapshot of the entry's settings and current binding."""
        process = self.process
        status = MonitorStatus(
            pattern=self._pattern,
            frequency=self._frequency,
            max_lifetime=self._max_lifetime,
            running=self.running,
        )
        if process is not None:
            status.pid = process.pid
            status.name = process.name
            status.started_at = process.started_at
            status.uptime_seconds = process.age(self.clock())
        return status
