"""
Process Watchdog - interactive process lifetime monitor

Register processes by PID, name or regular expression, re-check them
periodically and kill any that run longer than their configured lifetime.
"""

__version__ = "1.0.0"

from .watchdog import ProcessWatchdog
from .config import WatchdogConfig
from .monitor import MonitorEntry
from .registry import MonitorRegistry

__all__ = ["ProcessWatchdog", "WatchdogConfig", "MonitorEntry", "MonitorRegistry"]
