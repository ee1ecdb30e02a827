"""Configuration management for Process Watchdog."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml


@dataclass
class TargetConfig:
    """Configuration for a single monitored target."""

    # PID, exact process name, or regular expression
    pattern: str
    enabled: bool = True

    frequency: float = 1.0  # checks per minute
    max_lifetime: float = 3600.0  # seconds

    # Register even if the pattern does not match exactly one process yet
    force: bool = True

    def validate(self) -> list[str]:
        """Validate target configuration, return list of errors."""
        errors = []

        if not self.pattern:
            errors.append("Target: pattern is required")

        if not _is_positive(self.frequency):
            errors.append(f"Target '{self.pattern}': frequency must be greater than zero")

        if not _is_positive(self.max_lifetime):
            errors.append(f"Target '{self.pattern}': max_lifetime must be greater than zero")

        return errors


@dataclass
class NotifierConfig:
    """Configuration for a notification channel."""

    type: str  # telegram, slack, webhook
    enabled: bool = True

    # Telegram
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None

    # Slack
    webhook_url: Optional[str] = None

    # Webhook
    url: Optional[str] = None
    method: str = "POST"
    headers: dict = field(default_factory=dict)

    # Event filters
    on_bind: bool = False
    on_exit: bool = True
    on_kill: bool = True
    on_failure: bool = True


@dataclass
class WatchdogConfig:
    """Main configuration for the watchdog."""

    targets: list[TargetConfig] = field(default_factory=list)
    notifiers: list[NotifierConfig] = field(default_factory=list)

    # Global settings
    log_file: Optional[str] = None
    log_level: str = "INFO"
    pid_file: Optional[str] = None

    dry_run: bool = False
    kill_timeout: float = 3.0  # seconds to wait for a killed process to exit

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "WatchdogConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchdogConfig":
        """Create configuration from dictionary."""
        config = cls()

        config.log_file = data.get("log_file", config.log_file)
        config.log_level = data.get("log_level", config.log_level)
        config.pid_file = data.get("pid_file", config.pid_file)
        config.dry_run = data.get("dry_run", config.dry_run)
        config.kill_timeout = data.get("kill_timeout", config.kill_timeout)

        for target_data in data.get("targets", []):
            target = TargetConfig(
                pattern=str(target_data["pattern"]),
                enabled=target_data.get("enabled", True),
                frequency=target_data.get("frequency", 1.0),
                max_lifetime=target_data.get("max_lifetime", 3600.0),
                force=target_data.get("force", True),
            )
            config.targets.append(target)

        for notif_data in data.get("notifiers", []):
            notif = NotifierConfig(
                type=notif_data["type"],
                enabled=notif_data.get("enabled", True),
                bot_token=notif_data.get("bot_token"),
                chat_id=notif_data.get("chat_id"),
                webhook_url=notif_data.get("webhook_url"),
                url=notif_data.get("url"),
                method=notif_data.get("method", "POST"),
                headers=notif_data.get("headers", {}),
                on_bind=notif_data.get("on_bind", False),
                on_exit=notif_data.get("on_exit", True),
                on_kill=notif_data.get("on_kill", True),
                on_failure=notif_data.get("on_failure", True),
            )
            config.notifiers.append(notif)

        return config

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not _is_positive(self.kill_timeout):
            errors.append("kill_timeout must be greater than zero")

        for target in self.targets:
            errors.extend(target.validate())

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Export configuration to dictionary."""
        return {
            "log_file": self.log_file,
            "log_level": self.log_level,
            "pid_file": self.pid_file,
            "dry_run": self.dry_run,
            "kill_timeout": self.kill_timeout,
            "targets": [
                {
                    "pattern": t.pattern,
                    "enabled": t.enabled,
                    "frequency": t.frequency,
                    "max_lifetime": t.max_lifetime,
                    "force": t.force,
                }
                for t in self.targets
            ],
            "notifiers": [{"type": n.type, "enabled": n.enabled} for n in self.notifiers],
        }


def _is_positive(value: Any) -> bool:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0
