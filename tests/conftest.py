"""Shared fixtures: an in-memory process table and a manual clock."""

from typing import Optional

import pytest

from process_watchdog.processes import (
    ProcessGoneError,
    ProcessHandle,
    ProcessTable,
    TerminationDeniedError,
)


class FakeProcessTable(ProcessTable):
    """Process table backed by a dict instead of the OS."""

    def __init__(self, *handles: ProcessHandle):
        super().__init__()
        self.processes = {h.pid: h for h in handles}
        self.killed: list[ProcessHandle] = []
        self.denied: set[int] = set()
        self.snapshots = 0

    def spawn(self, pid: int, name: str, start_time: float = 0.0) -> ProcessHandle:
        handle = ProcessHandle(pid, name, start_time)
        self.processes[pid] = handle
        return handle

    def exit(self, pid: int):
        self.processes.pop(pid, None)

    def snapshot(self) -> list[ProcessHandle]:
        self.snapshots += 1
        return list(self.processes.values())

    def find_pid(self, pid: int) -> Optional[ProcessHandle]:
        return self.processes.get(pid)

    def is_running(self, handle: ProcessHandle) -> bool:
        return self.processes.get(handle.pid) == handle

    def terminate(self, handle: ProcessHandle) -> None:
        if handle.pid in self.denied:
            raise TerminationDeniedError(f"Access denied killing {handle}")
        if not self.is_running(handle):
            raise ProcessGoneError(f"Process {handle} no longer exists")
        del self.processes[handle.pid]
        self.killed.append(handle)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def table():
    return FakeProcessTable()


@pytest.fixture
def clock():
    return ManualClock()
