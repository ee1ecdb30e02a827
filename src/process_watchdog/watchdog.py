"""Main watchdog implementation."""

from __future__ import annotations

import logging
import os
import re
import signal
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import TargetConfig, WatchdogConfig
from .monitor import MonitorEntry, MonitorEvent
from .notifiers import BaseNotifier, NotifierFactory
from .processes import ProcessHandle, ProcessTable
from .registry import MonitorRegistry

logger = logging.getLogger("process-watchdog")


class ProcessWatchdog:
    """Owns the monitor registry, notifiers and the daemon loop."""

    def __init__(
        self,
        config: WatchdogConfig,
        table: Optional[ProcessTable] = None,
        autostart: bool = True,
    ):
        self.config = config
        self.notifiers: list[BaseNotifier] = []
        self.started_at = time.time()
        self.running = False
        self._stop_event = threading.Event()

        for notif_config in config.notifiers:
            try:
                notifier = NotifierFactory.create(notif_config)
                self.notifiers.append(notifier)
            except ValueError as e:
                logger.warning(f"Failed to create notifier: {e}")

        self._setup_logging()

        self.table = table or ProcessTable(
            dry_run=config.dry_run,
            kill_timeout=config.kill_timeout,
        )
        self.registry = MonitorRegistry(
            self.table,
            on_event=self.notify,
            autostart=autostart,
        )

        for target in config.targets:
            if not target.enabled:
                continue
            entry, message = self.register_target(target)
            if entry is None:
                logger.warning(message)

    def _setup_logging(self):
        """Configure logging."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logger.setLevel(level)

        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )

        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)

        if self.config.log_file:
            try:
                log_path = Path(self.config.log_file)
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path)
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                logger.addHandler(file_handler)
            except PermissionError:
                logger.warning(f"Cannot write to log file: {self.config.log_file}")

    def _write_pid_file(self):
        """Write PID file if configured."""
        if not self.config.pid_file or self.config.dry_run:
            return

        pid_path = Path(self.config.pid_file)
        try:
            pid_path.parent.mkdir(parents=True, exist_ok=True)
            pid_path.write_text(str(os.getpid()))
            logger.debug(f"Wrote PID file: {pid_path}")
        except OSError as e:
            logger.warning(f"Failed to write PID file: {e}")

    def _remove_pid_file(self):
        """Remove PID file on shutdown."""
        if not self.config.pid_file:
            return

        pid_path = Path(self.config.pid_file)
        try:
            if pid_path.exists():
                pid_path.unlink()
        except OSError as e:
            logger.debug(f"Failed to remove PID file: {e}")

    def notify(self, event: MonitorEvent):
        """Send an event to all configured notifiers."""
        for notifier in self.notifiers:
            try:
                success, message = notifier.send(event)
                if success:
                    logger.debug(f"Notification sent via {notifier.config.type}: {message}")
                else:
                    logger.warning(f"Notification failed via {notifier.config.type}: {message}")
            except Exception as e:
                logger.error(f"Notification error ({notifier.config.type}): {e}")

    def register(
        self,
        query: str,
        frequency: float,
        max_lifetime: float,
        force: bool = False,
    ) -> tuple[Optional[MonitorEntry], str]:
        """Register a new target from operator input.

        ``query`` is a PID, a process name or a regular expression. A name
        that matches exactly one process binds to it right away. Otherwise
        the target is only registered with ``force`` and stays unbound until
        a single match shows up.

        Returns the new entry (or None) and a message for the operator.
        """
        query = query.strip()
        if not query:
            return None, "Please, type valid name."

        if query.isdigit():
            pid = int(query)
            process = self.table.find_pid(pid)
            if process is None:
                return None, f"Process with id {pid} not found"
            if self.registry.find_by_pid(pid) is not None:
                return None, "Process already added"
            pattern = f"^{re.escape(process.name)}$"
            return self._create(pattern, frequency, max_lifetime, process)

        try:
            matches = self.table.search(query)
        except ValueError as e:
            return None, str(e)

        if len(matches) == 1:
            process = matches[0]
            if self.registry.find_by_pid(process.pid) is not None:
                return None, "Process already added"
            return self._create(query, frequency, max_lifetime, process)

        if not force:
            if matches:
                return None, (
                    f"'{query}' matches {len(matches)} processes, "
                    "narrow the pattern or enable force"
                )
            return None, f"No process matches '{query}'"

        if self.registry.find_by_search_pattern(query) is not None:
            return None, "Process already added"
        return self._create(query, frequency, max_lifetime, None)

    def register_target(self, target: TargetConfig) -> tuple[Optional[MonitorEntry], str]:
        """Register a target from configuration."""
        return self.register(
            str(target.pattern),
            target.frequency,
            target.max_lifetime,
            force=target.force,
        )

    def _create(
        self,
        pattern: str,
        frequency: float,
        max_lifetime: float,
        process: Optional[ProcessHandle],
    ) -> tuple[Optional[MonitorEntry], str]:
        try:
            entry = self.registry.create(pattern, frequency, max_lifetime, process)
        except ValueError as e:
            return None, str(e)

        if entry is None:
            return None, "Process already added"
        if process is not None:
            return entry, f"Process {process.name}, id {process.pid} added."
        return entry, f"Process search name {pattern} added."

    def shutdown(self, timeout: Optional[float] = 5.0):
        """Stop the daemon loop and every monitor."""
        self._stop_event.set()
        self.registry.stop_all(timeout=timeout)

    def run(self):
        """Block until SIGINT/SIGTERM, letting the monitors do their work."""
        self._stop_event.clear()
        self.running = True
        self._write_pid_file()

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self._stop_event.set()

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

        logger.info("Process Watchdog started")
        if self.config.dry_run:
            logger.info("Running in DRY-RUN mode")

        logger.info(f"Monitoring {len(self.registry)} targets")

        try:
            while not self._stop_event.is_set():
                self._stop_event.wait(1)
        finally:
            self.running = False
            self.shutdown()
            self._remove_pid_file()
            logger.info("Process Watchdog stopped")

    def status(self) -> dict:
        """Get current status of all monitors."""
        result = {
            "watchdog": {
                "running": self.running,
                "started_at": datetime.fromtimestamp(self.started_at).isoformat(),
                "dry_run": self.config.dry_run,
            },
            "monitors": [],
        }

        for entry in self.registry:
            status = entry.status()
            result["monitors"].append(
                {
                    "pattern": status.pattern,
                    "frequency": status.frequency,
                    "max_lifetime": status.max_lifetime,
                    "running": status.running,
                    "pid": status.pid,
                    "name": status.name,
                    "started_at": status.started_at.isoformat() if status.started_at else None,
                    "uptime_seconds": status.uptime_seconds,
                }
            )

        return result
