"""
Telemetry transport.

Components receive a TelemetryService through their constructor and call it
at every workflow transition. Calls are fire-and-forget: nothing is awaited
and no failure ever propagates back into the caller.
"""

import atexit
import json
import logging
import os
import platform
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from urllib import request

import yaml

from .. import __version__

# Prefer environment variables for config.
POSTHOG_API_KEY = os.getenv("SFCA_POSTHOG_API_KEY", "")
POSTHOG_HOST = os.getenv("SFCA_POSTHOG_HOST", "https://app.posthog.com")

logger = logging.getLogger(__name__)


class TelemetryService(Protocol):
    """The calls the rest of the server makes into telemetry."""

    def send_command_event(self, name: str, properties: Dict[str, Any]) -> None: ...

    def send_exception(
        self, name: str, message: str, properties: Optional[Dict[str, Any]] = None
    ) -> None: ...


class LogOnlyTelemetryService:
    """Records events in the debug log only. Used when telemetry is disabled."""

    def send_command_event(self, name: str, properties: Dict[str, Any]) -> None:
        logger.debug(f"Telemetry event (not sent): {name} {json.dumps(properties, default=str)}")

    def send_exception(
        self, name: str, message: str, properties: Optional[Dict[str, Any]] = None
    ) -> None:
        logger.debug(f"Telemetry exception (not sent): {name}: {message} {properties or {}}")


class TelemetryClient:
    """
    Handles anonymous usage tracking.

    Enablement and the anonymous id are read from the workspace config file,
    so flipping `telemetry.enabled` takes effect without a restart.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path(".sfca/config.yaml")
        self._distinct_id: Optional[str] = None
        self._threads: List[threading.Thread] = []

        # Register cleanup to wait for pending requests on exit
        atexit.register(self._flush)

    def _flush(self):
        """Wait for pending telemetry requests to finish."""
        pending = [t for t in self._threads if t.is_alive()]
        for t in pending:
            t.join(timeout=2.0)

    def _read_section(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            section = data.get("telemetry") or {}
            return section if isinstance(section, dict) else {}
        except (OSError, yaml.YAMLError) as e:
            logger.debug(f"Unable to read telemetry config: {e}")
            return {}

    @property
    def is_enabled(self) -> bool:
        """Check if telemetry is enabled in config. Defaults to False."""
        return bool(self._read_section().get("enabled", False))

    @property
    def distinct_id(self) -> str:
        """Get or generate persistent anonymous ID."""
        if self._distinct_id:
            return self._distinct_id

        self._distinct_id = self._read_section().get("distinct_id")
        if not self._distinct_id:
            self._distinct_id = str(uuid.uuid4())

        return self._distinct_id

    def send_command_event(self, name: str, properties: Dict[str, Any]) -> None:
        self.track(name, properties)

    def send_exception(
        self, name: str, message: str, properties: Optional[Dict[str, Any]] = None
    ) -> None:
        self.track("$exception", {"exception_name": name, "message": message, **(properties or {})})

    def track(self, event_name: str, properties: Optional[Dict[str, Any]] = None):
        """Fire and forget an event."""
        logger.debug(f"Telemetry event: {event_name} {properties or {}}")
        if not self.is_enabled:
            return

        if not POSTHOG_API_KEY:
            return

        payload = {
            "api_key": POSTHOG_API_KEY,
            "event": event_name,
            "properties": {
                "distinct_id": self.distinct_id,
                "$lib": "sfca-lsp",
                "$lib_version": __version__,
                "$os": platform.system(),
                "$python_version": platform.python_version(),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **(properties or {}),
            },
        }

        # Track thread so we can join it at exit; finished ones are dropped
        self._threads = [t for t in self._threads if t.is_alive()]
        thread = threading.Thread(target=self._send_request, args=(payload,))
        thread.daemon = False
        self._threads.append(thread)
        thread.start()

    def _send_request(self, payload: Dict[str, Any]):
        """Internal method to send HTTP request via urllib."""
        try:
            data = json.dumps(payload, default=str).encode("utf-8")
            req = request.Request(
                f"{POSTHOG_HOST}/capture/",
                data=data,
                headers={"Content-Type": "application/json"},
            )
            with request.urlopen(req, timeout=5.0) as _:
                pass
        except Exception as e:
            # Telemetry failures must be silent
            logger.debug(f"Telemetry request failed: {e}")


def create_telemetry_service(config_path: Path, enabled: bool) -> TelemetryService:
    """Return the live client when telemetry is enabled, a log-only sink otherwise."""
    if enabled:
        return TelemetryClient(config_path=config_path)
    return LogOnlyTelemetryService()
