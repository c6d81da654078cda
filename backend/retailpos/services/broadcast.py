"""
Real-time event broadcasting.

Events go to named channels:
- "location:<id>" for everyone working at a location
- "admin" for administrators

The transport (websocket server, message bus) lives outside this package.
The app holds one Broadcaster instance; the sale engine emits through it
only after its transaction has committed.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"

# Event names
SALE_COMPLETED = "sale.completed"
STOCK_LOW = "stock.low"
STOCK_LOW_ADMIN = "stock.low.admin"


def location_channel(location_id: str) -> str:
    return f"location:{location_id}"


@dataclass
class BroadcastMessage:
    """Standard event envelope"""
    channel: str
    event: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: to_utc_z(utcnow()))

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


class Broadcaster:
    """Interface: deliver an event to every subscriber of a channel."""

    def emit(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingBroadcaster(Broadcaster):
    """Default broadcaster: writes each event to the log."""

    def __init__(self, logger_name: str = "retailpos.events"):
        self._logger = logging.getLogger(logger_name)

    def emit(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        message = BroadcastMessage(channel=channel, event=event, data=payload)
        self._logger.info("broadcast %s", message.to_json())


class RecordingBroadcaster(Broadcaster):
    """Keeps every event in memory. Thread-safe; used by tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self.messages: List[BroadcastMessage] = []

    def emit(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.messages.append(BroadcastMessage(channel=channel, event=event, data=payload))

    def events(self, event: str | None = None, channel: str | None = None) -> List[BroadcastMessage]:
        with self._lock:
            return [
                m for m in self.messages
                if (event is None or m.event == event) and (channel is None or m.channel == channel)
            ]

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()


def safe_emit(broadcaster: Broadcaster | None, channel: str, event: str, payload: Dict[str, Any]) -> bool:
    """Emit without ever raising. Returns False when delivery failed."""
    if broadcaster is None:
        return False
    try:
        broadcaster.emit(channel, event, payload)
        return True
    except Exception:
        logger.exception("Failed to broadcast %s on %s", event, channel)
        return False
