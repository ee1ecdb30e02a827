"""Process table access built on psutil."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import psutil

logger = logging.getLogger("process-watchdog")


class ProcessTableError(Exception):
    """Base error for process table operations."""


class ProcessGoneError(ProcessTableError):
    """The process exited before the operation completed."""


class TerminationDeniedError(ProcessTableError):
    """Not enough privileges to terminate the process."""


class TerminationTimeoutError(ProcessTableError):
    """The process was signalled but is still alive after the kill timeout."""


@dataclass(frozen=True)
class ProcessHandle:
    """Snapshot of a single OS process."""

    pid: int
    name: str
    start_time: float  # epoch seconds

    @property
    def started_at(self) -> datetime:
        return datetime.fromtimestamp(self.start_time)

    def age(self, now: Optional[float] = None) -> float:
        """Seconds since the process started."""
        if now is None:
            now = time.time()
        return now - self.start_time

    def __str__(self) -> str:
        return f"{self.name} (pid {self.pid})"


class ProcessTable:
    """Enumerate, probe and terminate OS processes."""

    def __init__(self, dry_run: bool = False, kill_timeout: float = 3.0):
        self.dry_run = dry_run
        self.kill_timeout = kill_timeout

    def snapshot(self) -> list[ProcessHandle]:
        """Return every process currently visible to us."""
        handles = []
        for proc in psutil.process_iter(["pid", "name", "create_time", "status"]):
            try:
                name = proc.info["name"]
                create_time = proc.info["create_time"]
                if not name or create_time is None:
                    continue
                # Zombies have already exited, is_running() agrees
                if proc.info.get("status") == psutil.STATUS_ZOMBIE:
                    continue
                handles.append(ProcessHandle(proc.info["pid"], name, create_time))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return handles

    def find_pid(self, pid: int) -> Optional[ProcessHandle]:
        """Look up a single process by PID."""
        try:
            proc = psutil.Process(pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return None
            return ProcessHandle(pid, proc.name(), proc.create_time())
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def search(self, pattern: str) -> list[ProcessHandle]:
        """Return processes whose name matches the regex (case-insensitive)."""
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid pattern '{pattern}': {e}") from e

        return [h for h in self.snapshot() if regex.search(h.name)]

    def is_running(self, handle: ProcessHandle) -> bool:
        """Check the process still exists and is the same instance."""
        try:
            proc = psutil.Process(handle.pid)
            if proc.create_time() != handle.start_time:
                return False
            return proc.status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists, we just can't look at it
            return True

    def terminate(self, handle: ProcessHandle) -> None:
        """Kill the process and wait briefly for it to go away."""
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would kill {handle}")
            return

        try:
            proc = psutil.Process(handle.pid)
            if proc.create_time() != handle.start_time:
                raise ProcessGoneError(f"Process {handle} no longer exists")
            proc.kill()
            proc.wait(timeout=self.kill_timeout)
        except psutil.TimeoutExpired as e:
            raise TerminationTimeoutError(
                f"{handle} did not exit within {self.kill_timeout}s after kill"
            ) from e
        except psutil.NoSuchProcess as e:
            raise ProcessGoneError(f"Process {handle} no longer exists") from e
        except psutil.AccessDenied as e:
            raise TerminationDeniedError(f"Access denied killing {handle}") from e
