"""Event models flowing from the transport into the connection state."""

from dataclasses import dataclass
from typing import Optional

DEFAULT_EVENT_NAME = "message"


@dataclass(frozen=True)
class StreamEvent:
    """One parsed record from the relay event stream."""
    event: str
    data: str = ""


@dataclass(frozen=True)
class TransportClosed:
    """The streaming connection completed, cleanly or with an error."""
    error: Optional[str] = None


@dataclass(frozen=True)
class Disconnected:
    """The client was asked to disconnect locally."""
