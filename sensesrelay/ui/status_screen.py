"""Console status line for the relay connection and push-to-talk session."""

import logging
from typing import Optional

from pubsub import pub
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..capture.session import CAPTURE_STATE_TOPIC
from ..models.capture import CaptureState
from ..models.connection import ConnectionState
from ..relay.client import RELAY_STATE_TOPIC

logger = logging.getLogger(__name__)

LEVEL_BAR_WIDTH = 10


class StatusScreen:
    """Renders connection and capture state as they are published."""

    def __init__(self,
                 console: Optional[Console] = None,
                 state_topic: str = RELAY_STATE_TOPIC,
                 capture_topic: str = CAPTURE_STATE_TOPIC):
        self.console = console or Console()
        self.state_topic = state_topic
        self.capture_topic = capture_topic
        self.connection = ConnectionState()
        self.capture = CaptureState()
        self.recently_sent = False
        self._live: Optional[Live] = None

        pub.subscribe(self.on_connection_state, state_topic)
        pub.subscribe(self.on_capture_state, capture_topic)

    def on_connection_state(self, state: ConnectionState) -> None:
        self.connection = state
        self.refresh()

    def on_capture_state(self, state: CaptureState) -> None:
        self.capture = state
        self.refresh()

    def set_recently_sent(self, value: bool) -> None:
        if value != self.recently_sent:
            self.recently_sent = value
            self.refresh()

    def start(self) -> None:
        self._live = Live(self.render(), console=self.console, refresh_per_second=8)
        self._live.start()

    def stop(self) -> None:
        pub.unsubscribe(self.on_connection_state, self.state_topic)
        pub.unsubscribe(self.on_capture_state, self.capture_topic)
        if self._live is not None:
            self._live.stop()
            self._live = None

    def refresh(self) -> None:
        if self._live is not None:
            self._live.update(self.render())

    def render(self) -> Panel:
        """Build the status panel for the current snapshots."""
        header = Table.grid(expand=True)
        header.add_column()
        header.add_column(justify="right")
        if self.connection.connected:
            link = Text("● Relay connected", style="green")
        else:
            link = Text("● Connecting...", style="red")
        header.add_row(link, Text(self.connection.last_event_summary, style="dim"))

        lines = [header, Text()]
        if self.capture.is_recording:
            rec = Text(f"REC {self.capture.duration:.1f}s  ", style="bold red")
            rec.append(level_bar(self.capture.input_level), style="green")
            lines.append(rec)
        lines.append(Text(self.capture.transcript or "Listening...",
                          style="default" if self.capture.transcript else "dim"))
        if self.recently_sent and not self.capture.is_recording:
            lines.append(Text("✓ Sent", style="green"))
        if self.capture.last_error:
            lines.append(Text(self.capture.last_error, style="red"))

        hint = "space: send   q: quit" if self.capture.is_recording else "space: talk   q: quit"
        return Panel(Group(*lines), title="SensesRelay", subtitle=hint)


def level_bar(level: float, width: int = LEVEL_BAR_WIDTH) -> str:
    """Render a 0..1 input level as a fixed-width meter."""
    filled = round(min(max(level, 0.0), 1.0) * width)
    return "▮" * filled + "▯" * (width - filled)
