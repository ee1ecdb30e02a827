"""Notification plugins for Process Watchdog."""

from abc import ABC, abstractmethod

import requests

from .config import NotifierConfig
from .monitor import MonitorEvent


class BaseNotifier(ABC):
    """Base class for notification plugins."""

    def __init__(self, config: NotifierConfig):
        self.config = config

    def should_notify(self, event: MonitorEvent) -> bool:
        """Check if notification should be sent for this event."""
        if not self.config.enabled:
            return False

        if event.event_type == MonitorEvent.BOUND:
            return self.config.on_bind
        elif event.event_type == MonitorEvent.EXITED:
            return self.config.on_exit
        elif event.event_type == MonitorEvent.KILLED:
            return self.config.on_kill
        elif event.event_type in (MonitorEvent.KILL_FAILED, MonitorEvent.ERROR):
            return self.config.on_failure

        return True

    @abstractmethod
    def send(self, event: MonitorEvent) -> tuple[bool, str]:
        """Send notification. Returns (success, message)."""
        pass


def _target_label(event: MonitorEvent) -> str:
    if event.process:
        return f"{event.process.name} (pid {event.process.pid})"
    return event.pattern


class TelegramNotifier(BaseNotifier):
    """Telegram notification plugin."""

    def send(self, event: MonitorEvent) -> tuple[bool, str]:
        if not self.should_notify(event):
            return True, "Notification skipped (disabled for this event type)"

        if not self.config.bot_token or not self.config.chat_id:
            return False, "Telegram bot_token and chat_id required"

        emoji_map = {
            MonitorEvent.BOUND: "\U0001f517",
            MonitorEvent.EXITED: "\U0001f44b",
            MonitorEvent.KILLED: "\U0001f480",
            MonitorEvent.KILL_FAILED: "❌",
            MonitorEvent.ERROR: "⚠️",
        }
        emoji = emoji_map.get(event.event_type, "\U0001f4e2")

        text = f"{emoji} *Process Watchdog*\n\n"
        text += f"*Target:* `{_target_label(event)}`\n"
        text += f"*Pattern:* `{event.pattern}`\n"
        text += f"*Event:* {event.event_type.upper()}\n"
        text += f"*Time:* {event.timestamp.strftime('%Y-%m-%d %H:%M:%S')}\n\n"
        text += event.message

        if event.error:
            text += f"\n\n*Error:* {event.error}"

        try:
            response = requests.post(
                f"https://api.telegram.org/bot{self.config.bot_token}/sendMessage",
                data={
                    "chat_id": self.config.chat_id,
                    "text": text,
                    "parse_mode": "Markdown",
                },
                timeout=30,
            )
            response.raise_for_status()
            return True, "Telegram notification sent"
        except requests.RequestException as e:
            return False, f"Telegram error: {e}"


class SlackNotifier(BaseNotifier):
    """Slack notification plugin."""

    def send(self, event: MonitorEvent) -> tuple[bool, str]:
        if not self.should_notify(event):
            return True, "Notification skipped (disabled for this event type)"

        if not self.config.webhook_url:
            return False, "Slack webhook_url required"

        color_map = {
            MonitorEvent.BOUND: "good",
            MonitorEvent.EXITED: "#808080",
            MonitorEvent.KILLED: "warning",
            MonitorEvent.KILL_FAILED: "danger",
            MonitorEvent.ERROR: "danger",
        }
        color = color_map.get(event.event_type, "#808080")

        payload = {
            "attachments": [
                {
                    "color": color,
                    "title": f"Process Watchdog: {_target_label(event)}",
                    "text": event.message,
                    "fields": [
                        {"title": "Event", "value": event.event_type.upper(), "short": True},
                        {
                            "title": "Time",
                            "value": event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                            "short": True,
                        },
                        {"title": "Pattern", "value": event.pattern, "short": False},
                    ],
                    "footer": "Process Watchdog",
                }
            ]
        }

        if event.error:
            payload["attachments"][0]["fields"].append(
                {"title": "Error", "value": event.error, "short": False}
            )

        try:
            response = requests.post(
                self.config.webhook_url,
                json=payload,
                timeout=30,
            )
            response.raise_for_status()
            return True, "Slack notification sent"
        except requests.RequestException as e:
            return False, f"Slack error: {e}"


class WebhookNotifier(BaseNotifier):
    """Generic webhook notification plugin."""

    def send(self, event: MonitorEvent) -> tuple[bool, str]:
        if not self.should_notify(event):
            return True, "Notification skipped (disabled for this event type)"

        if not self.config.url:
            return False, "Webhook url required"

        try:
            response = requests.request(
                method=self.config.method,
                url=self.config.url,
                json=event.to_dict(),
                headers=self.config.headers,
                timeout=30,
            )
            response.raise_for_status()
            return True, f"Webhook notification sent ({response.status_code})"
        except requests.RequestException as e:
            return False, f"Webhook error: {e}"


class NotifierFactory:
    """Factory for creating notifier instances."""

    _notifiers = {
        "telegram": TelegramNotifier,
        "slack": SlackNotifier,
        "webhook": WebhookNotifier,
    }

    @classmethod
    def create(cls, config: NotifierConfig) -> BaseNotifier:
        """Create a notifier instance from config."""
        notifier_class = cls._notifiers.get(config.type.lower())
        if not notifier_class:
            raise ValueError(f"Unknown notifier type: {config.type}")
        return notifier_class(config)

    @classmethod
    def register(cls, name: str, notifier_class: type):
        """Register a custom notifier type."""
        cls._notifiers[name.lower()] = notifier_class
