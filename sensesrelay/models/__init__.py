"""Data models for the SensesRelay application."""

from .events import StreamEvent, TransportClosed, Disconnected
from .connection import ConnectionState, reduce_connection
from .relay import (
    RequestParameters,
    RelayRequest,
    TranscriptionResult,
    RawResult,
    decode_relay_request,
    result_payload,
)
from .capture import CapturePhase, CaptureState, CaptureOutcome, reduce_capture

__all__ = [
    "StreamEvent",
    "TransportClosed",
    "Disconnected",
    "ConnectionState",
    "reduce_connection",
    # Relay protocol models
    "RequestParameters",
    "RelayRequest",
    "TranscriptionResult",
    "RawResult",
    "decode_relay_request",
    "result_payload",
    # Capture session models
    "CapturePhase",
    "CaptureState",
    "CaptureOutcome",
    "reduce_capture",
]
