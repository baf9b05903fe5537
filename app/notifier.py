"""
Failure alerts for the bridge: generic JSON webhook and Gotify.

Both are optional and best-effort; a failed delivery is logged at DEBUG and
never interrupts the poll loop.

Env:
- NOTIFY_WEBHOOK_URL, NOTIFY_MIN_LEVEL (default WARNING)
- GOTIFY_URL, GOTIFY_TOKEN, GOTIFY_PRIORITY (default 5), GOTIFY_MIN_LEVEL (default WARNING)
- APP_TAG (default "Spotify→ListenBrainz")
"""

from __future__ import annotations
import os
import logging
import requests

log = logging.getLogger("notifier")

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}
DEFAULT_TAG = "Spotify→ListenBrainz"


def _level(name: str | None) -> int:
    return _LEVELS.get((name or "").upper(), 30)


class WebhookNotifier:
    def __init__(self, url: str | None, min_level: str = "WARNING", app_tag: str = DEFAULT_TAG, timeout: float = 5):
        self.url = url.strip() if url else None
        self.min_level = _level(min_level)
        self.app_tag = app_tag
        self.timeout = timeout

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.url or _level(level) < self.min_level:
            return
        body = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        requests.post(self.url, json=body, timeout=self.timeout)


class GotifyNotifier:
    def __init__(self, url: str | None, token: str | None, min_level: str = "WARNING",
                 priority: int = 5, app_tag: str = DEFAULT_TAG, timeout: float = 5):
        self.url = url.rstrip("/") if url else None
        self.token = token.strip() if token else None
        self.min_level = _level(min_level)
        self.priority = priority
        self.app_tag = app_tag
        self.timeout = timeout

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.url or not self.token or _level(level) < self.min_level:
            return
        body = {
            "title": f"{self.app_tag}: {title}",
            "message": message if not extra else f"{message}\n\n{extra}",
            "priority": self.priority,
        }
        requests.post(f"{self.url}/message", json=body, headers={"X-Gotify-Key": self.token}, timeout=self.timeout)


class Alerter:
    """Fans an alert out to every configured notifier."""

    def __init__(self, *notifiers):
        self.notifiers = notifiers

    def __call__(self, level: str, title: str, message: str, extra: dict | None = None):
        for notifier in self.notifiers:
            try:
                notifier.send(level, title, message, extra)
            except requests.RequestException as e:
                log.debug("%s send failed: %s", type(notifier).__name__, e)


def from_env() -> Alerter:
    app_tag = os.getenv("APP_TAG", DEFAULT_TAG)
    return Alerter(
        WebhookNotifier(
            os.getenv("NOTIFY_WEBHOOK_URL"),
            min_level=os.getenv("NOTIFY_MIN_LEVEL", "WARNING"),
            app_tag=app_tag,
        ),
        GotifyNotifier(
            os.getenv("GOTIFY_URL"),
            os.getenv("GOTIFY_TOKEN"),
            min_level=os.getenv("GOTIFY_MIN_LEVEL", "WARNING"),
            priority=int(os.getenv("GOTIFY_PRIORITY", "5")),
            app_tag=app_tag,
        ),
    )
