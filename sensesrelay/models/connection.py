"""Connection state and its reducer."""

from dataclasses import dataclass, replace
from typing import Optional, Tuple, Union

from ..errors import ProtocolDecodeError
from .events import StreamEvent, TransportClosed, Disconnected
from .relay import RelayRequest, decode_relay_request

SUMMARY_PREVIEW_CHARS = 100

ConnectionEvent = Union[StreamEvent, TransportClosed, Disconnected]


@dataclass(frozen=True)
class ConnectionState:
    """Observable state of the relay connection.

    ``last_event_summary`` is for diagnostics only and never drives control
    decisions.
    """
    connected: bool = False
    last_event_summary: str = ""


def reduce_connection(
    state: ConnectionState, event: ConnectionEvent
) -> Tuple[ConnectionState, Optional[RelayRequest]]:
    """Apply one event to the connection state.

    Args:
        state: Current connection state
        event: Parsed stream event or transport notification

    Returns:
        The new state and the decoded request, if the event carried one
    """
    if isinstance(event, (TransportClosed, Disconnected)):
        return replace(state, connected=False), None

    if event.event == "hello":
        return replace(state, connected=True, last_event_summary="Connected to relay"), None

    if event.event == "ping":
        return state, None

    if event.event == "request":
        try:
            request = decode_relay_request(event.data)
        except ProtocolDecodeError as e:
            return replace(state, last_event_summary=f"Parse error: {e}"), None
        summary = f"Request: {request.type} (#{request.id})"
        return replace(state, last_event_summary=summary), request

    preview = event.data[:SUMMARY_PREVIEW_CHARS]
    return replace(state, last_event_summary=f"[{event.event}] {preview}"), None
