"""Collection of monitor entries."""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Callable, Iterator, Optional

from .monitor import MonitorEntry, MonitorEvent
from .processes import ProcessHandle, ProcessTable

logger = logging.getLogger("process-watchdog")


class MonitorRegistry:
    """Ordered set of monitor entries, at most one per bound PID."""

    def __init__(
        self,
        table: Optional[ProcessTable] = None,
        on_event: Optional[Callable[[MonitorEvent], None]] = None,
        clock: Callable[[], float] = time.time,
        autostart: bool = True,
    ):
        self.table = table or ProcessTable()
        self.on_event = on_event
        self.clock = clock
        self.autostart = autostart
        self._entries: list[MonitorEntry] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[MonitorEntry]:
        return iter(self.entries())

    def __contains__(self, entry: MonitorEntry) -> bool:
        with self._lock:
            return any(e is entry for e in self._entries)

    def entries(self) -> list[MonitorEntry]:
        """Copy of the entries in insertion order."""
        with self._lock:
            return list(self._entries)

    def create(
        self,
        pattern: str,
        frequency: float,
        max_lifetime: float,
        process: Optional[ProcessHandle] = None,
    ) -> Optional[MonitorEntry]:
        """Build an entry wired to this registry and add it.

        Returns None if ``process`` is already monitored. Raises ValueError
        for an invalid pattern or non-positive settings.
        """
        if process is not None and self.find_by_pid(process.pid) is not None:
            return None

        entry = MonitorEntry(
            pattern,
            frequency,
            max_lifetime,
            process,
            table=self.table,
            clock=self.clock,
            on_event=self.on_event,
            start=False,
        )
        if not self.add(entry):
            return None
        if self.autostart:
            entry.start()
        return entry

    def add(self, entry: MonitorEntry) -> bool:
        """Append an entry unless it or its bound PID is already present."""
        with self._lock:
            if entry in self:
                return False
            process = entry.process
            if process is not None and self.find_by_pid(process.pid) is not None:
                logger.warning(f"Process {process} is already monitored")
                return False

            entry.is_claimed = lambda pid: self._claimed_by_other(pid, entry)
            self._entries.append(entry)

        logger.info(f"Added monitor for '{entry.pattern}'")
        return True

    def _claimed_by_other(self, pid: int, entry: MonitorEntry) -> bool:
        owner = self.find_by_pid(pid)
        return owner is not None and owner is not entry

    def find_by_pid(self, pid: int) -> Optional[MonitorEntry]:
        """Entry currently bound to ``pid``, if any."""
        with self._lock:
            for entry in self._entries:
                process = entry.process
                if process is not None and process.pid == pid:
                    return entry
        return None

    def find_by_pattern(self, pattern: str) -> list[MonitorEntry]:
        """Entries whose bound process name or search pattern matches ``pattern``."""
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error:
            return []

        with self._lock:
            return [e for e in self._entries if e.matches(regex)]

    def find_by_search_pattern(self, pattern: str) -> Optional[MonitorEntry]:
        """Entry registered with exactly this search pattern."""
        with self._lock:
            for entry in self._entries:
                if entry.pattern == pattern:
                    return entry
        return None

    def select(self, query: str) -> Optional[MonitorEntry]:
        """Resolve operator input to a single entry.

        Digits select by PID, anything else must match exactly one entry.
        """
        query = query.strip()
        if not query:
            return None
        if query.isdigit():
            return self.find_by_pid(int(query))

        matches = self.find_by_pattern(query)
        if len(matches) == 1:
            return matches[0]
        return None

    def remove(self, entry: MonitorEntry) -> bool:
        """Remove an entry and stop its loop."""
        with self._lock:
            for i, e in enumerate(self._entries):
                if e is entry:
                    del self._entries[i]
                    break
            else:
                return False

        entry.stop()
        logger.info(f"Removed monitor for '{entry.pattern}'")
        return True

    def stop_all(self, timeout: Optional[float] = None):
        """Stop every entry and clear the registry."""
        with self._lock:
            entries = list(self._entries)
            self._entries.clear()

        for entry in entries:
            entry.stop()
        if timeout is not None:
            for entry in entries:
                entry.join(timeout)

        if entries:
            logger.info(f"Stopped {len(entries)} monitors")
