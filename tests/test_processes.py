"""Tests for the psutil-backed process table."""

import os
import subprocess
import sys
from datetime import datetime
from unittest.mock import MagicMock, patch

import psutil
import pytest

from process_watchdog.monitor import MonitorEntry
from process_watchdog.processes import (
    ProcessGoneError,
    ProcessHandle,
    ProcessTable,
    TerminationDeniedError,
    TerminationTimeoutError,
)


@pytest.fixture
def sleeper():
    """A child process that would run for a long time."""
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    yield proc
    if proc.poll() is None:
        proc.kill()
    try:
        proc.wait(timeout=5)
    except ChildProcessError:
        pass


class TestProcessHandle:
    """Test ProcessHandle value object."""

    def test_age(self):
        """Age is measured from start time."""
        handle = ProcessHandle(1, "init", start_time=100.0)
        assert handle.age(now=160.0) == 60.0

    def test_started_at(self):
        """Start time converts to datetime."""
        handle = ProcessHandle(1, "init", start_time=0.0)
        assert handle.started_at == datetime.fromtimestamp(0.0)

    def test_str(self):
        """String form shows name and pid."""
        assert str(ProcessHandle(7, "myapp", 0.0)) == "myapp (pid 7)"

    def test_equality_includes_start_time(self):
        """Same PID with a different start time is a different process."""
        assert ProcessHandle(7, "myapp", 1.0) != ProcessHandle(7, "myapp", 2.0)


class TestProcessTable:
    """Test ProcessTable against the real OS."""

    def test_snapshot_contains_self(self):
        """Our own process shows up in the snapshot."""
        pids = {h.pid for h in ProcessTable().snapshot()}
        assert os.getpid() in pids

    def test_find_pid_self(self):
        """Look up our own process."""
        handle = ProcessTable().find_pid(os.getpid())

        assert handle is not None
        assert handle.name == psutil.Process().name()
        assert handle.start_time == psutil.Process().create_time()

    @patch("process_watchdog.processes.psutil.Process")
    def test_find_pid_missing(self, mock_process):
        """Unknown PID returns None."""
        mock_process.side_effect = psutil.NoSuchProcess(999999)
        assert ProcessTable().find_pid(999999) is None

    @patch("process_watchdog.processes.psutil.process_iter")
    def test_snapshot_skips_vanished(self, mock_iter):
        """Processes that disappear during enumeration are skipped."""
        good = MagicMock()
        good.info = {"pid": 1, "name": "init", "create_time": 10.0}
        class Vanished:
            @property
            def info(self):
                raise psutil.NoSuchProcess(2)

        gone = Vanished()
        nameless = MagicMock()
        nameless.info = {"pid": 3, "name": None, "create_time": 10.0}
        mock_iter.return_value = [good, gone, nameless]

        assert ProcessTable().snapshot() == [ProcessHandle(1, "init", 10.0)]

    @patch("process_watchdog.processes.psutil.process_iter")
    def test_search(self, mock_iter):
        """Search filters by regex, ignoring case."""
        procs = []
        for pid, name in [(1, "init"), (2, "Chrome"), (3, "chromedriver")]:
            proc = MagicMock()
            proc.info = {"pid": pid, "name": name, "create_time": 1.0}
            procs.append(proc)
        mock_iter.return_value = procs

        assert [h.pid for h in ProcessTable().search("^chrome$")] == [2]
        assert [h.pid for h in ProcessTable().search("chrome")] == [2, 3]

    def test_search_invalid_regex(self):
        """Invalid regex raises ValueError."""
        with pytest.raises(ValueError):
            ProcessTable().search("(")

    def test_is_running_self(self):
        """Our own process is running."""
        table = ProcessTable()
        assert table.is_running(table.find_pid(os.getpid())) is True

    def test_is_running_wrong_start_time(self):
        """A handle with a stale start time is not running."""
        table = ProcessTable()
        handle = table.find_pid(os.getpid())
        stale = ProcessHandle(handle.pid, handle.name, handle.start_time - 1000)

        assert table.is_running(stale) is False

    def test_terminate_child(self, sleeper):
        """Terminate kills a real process."""
        table = ProcessTable(kill_timeout=5)
        handle = table.find_pid(sleeper.pid)
        assert table.is_running(handle)

        table.terminate(handle)

        assert table.is_running(handle) is False

    def test_terminate_dry_run(self, sleeper):
        """Dry-run leaves the process alone."""
        table = ProcessTable(dry_run=True)
        handle = table.find_pid(sleeper.pid)

        table.terminate(handle)

        assert table.is_running(handle) is True

    @patch("process_watchdog.processes.psutil.Process")
    def test_terminate_access_denied(self, mock_process):
        """Permission errors become TerminationDeniedError."""
        proc = MagicMock()
        proc.create_time.return_value = 5.0
        proc.kill.side_effect = psutil.AccessDenied(42)
        mock_process.return_value = proc

        with pytest.raises(TerminationDeniedError):
            ProcessTable().terminate(ProcessHandle(42, "root-thing", 5.0))

    @patch("process_watchdog.processes.psutil.Process")
    def test_terminate_vanished(self, mock_process):
        """A process that is already gone raises ProcessGoneError."""
        mock_process.side_effect = psutil.NoSuchProcess(42)

        with pytest.raises(ProcessGoneError):
            ProcessTable().terminate(ProcessHandle(42, "myapp", 5.0))

    @patch("process_watchdog.processes.psutil.Process")
    def test_terminate_reused_pid(self, mock_process):
        """A different process under the same PID is never killed."""
        proc = MagicMock()
        proc.create_time.return_value = 99.0
        mock_process.return_value = proc

        with pytest.raises(ProcessGoneError):
            ProcessTable().terminate(ProcessHandle(42, "myapp", 5.0))
        proc.kill.assert_not_called()

    @patch("process_watchdog.processes.psutil.Process")
    def test_terminate_slow_exit(self, mock_process):
        """A process still alive after the kill timeout raises TerminationTimeoutError."""
        proc = MagicMock()
        proc.create_time.return_value = 5.0
        proc.wait.side_effect = psutil.TimeoutExpired(3)
        mock_process.return_value = proc

        with pytest.raises(TerminationTimeoutError):
            ProcessTable().terminate(ProcessHandle(42, "myapp", 5.0))
        proc.kill.assert_called_once()


def zombie(pid, name, create_time=10.0):
    proc = MagicMock()
    proc.info = {
        "pid": pid,
        "name": name,
        "create_time": create_time,
        "status": psutil.STATUS_ZOMBIE,
    }
    return proc


class TestZombies:
    """Test that exited-but-unreaped processes count as gone."""

    @patch("process_watchdog.processes.psutil.process_iter")
    def test_snapshot_skips_zombies(self, mock_iter):
        """Zombies are left out of the snapshot."""
        alive = MagicMock()
        alive.info = {
            "pid": 1,
            "name": "init",
            "create_time": 10.0,
            "status": psutil.STATUS_SLEEPING,
        }
        mock_iter.return_value = [alive, zombie(2, "game")]

        assert ProcessTable().snapshot() == [ProcessHandle(1, "init", 10.0)]

    @patch("process_watchdog.processes.psutil.Process")
    def test_find_pid_zombie(self, mock_process):
        """Looking up a zombie by PID finds nothing."""
        proc = MagicMock()
        proc.status.return_value = psutil.STATUS_ZOMBIE
        proc.name.return_value = "game"
        proc.create_time.return_value = 10.0
        mock_process.return_value = proc

        assert ProcessTable().find_pid(2) is None

    @patch("process_watchdog.processes.psutil.Process")
    @patch("process_watchdog.processes.psutil.process_iter")
    def test_entry_never_binds_zombie(self, mock_iter, mock_process):
        """An unbound entry does not bind and drop a zombie every cycle."""
        mock_iter.return_value = [zombie(2, "game")]
        proc = MagicMock()
        proc.status.return_value = psutil.STATUS_ZOMBIE
        proc.create_time.return_value = 10.0
        mock_process.return_value = proc

        events = []
        entry = MonitorEntry(
            "game", 1, 60, table=ProcessTable(), on_event=events.append, start=False
        )
        for _ in range(3):
            assert entry.check() is None

        assert entry.process is None
        assert events == []
