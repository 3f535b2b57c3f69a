"""Relay request and response models."""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from ..errors import ProtocolDecodeError

TRANSCRIBE_AUDIO = "transcribeAudio"


class RequestParameters(BaseModel):
    """Capability-specific parameters of a relay request.

    Every field except ``type`` is optional; unknown fields are kept so a
    capability can read them without a model change.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    seconds: Optional[float] = None
    count: Optional[StrictInt] = None
    interval_ms: Optional[StrictInt] = None
    text: Optional[str] = None


class RelayRequest(BaseModel):
    """A command pushed by the relay, correlated by ``id``."""
    model_config = ConfigDict(frozen=True)

    id: StrictInt
    request: RequestParameters

    @property
    def type(self) -> str:
        return self.request.type

    @property
    def parameters(self) -> RequestParameters:
        return self.request


def decode_relay_request(payload: str) -> RelayRequest:
    """Decode the data of a ``request`` event.

    Raises:
        ProtocolDecodeError: If the payload is not a valid relay request
    """
    try:
        return RelayRequest.model_validate_json(payload)
    except ValidationError as e:
        errors = e.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", str(e))
        message = f"{location}: {detail}" if location else detail
        raise ProtocolDecodeError(message) from e


class TranscriptionResult(BaseModel):
    """Result of the ``transcribeAudio`` capability."""
    text: str
    duration_seconds: float
    confidence: float = 0.95


class RawResult(BaseModel):
    """Passthrough result for request types without a schema."""
    payload: Dict[str, Any] = Field(default_factory=dict)


RelayResult = Union[TranscriptionResult, RawResult]

RESULT_SCHEMAS = {
    TRANSCRIBE_AUDIO: TranscriptionResult,
}


def result_payload(result: Union[RelayResult, Dict[str, Any]]) -> Dict[str, Any]:
    """Turn a result into the JSON object sent as ``response.result``."""
    if isinstance(result, RawResult):
        return dict(result.payload)
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return dict(result)


def parse_result(request_type: str, payload: Dict[str, Any]) -> RelayResult:
    """Build the typed result for ``request_type``, falling back to raw."""
    schema = RESULT_SCHEMAS.get(request_type)
    if schema is None:
        return RawResult(payload=payload)
    try:
        return schema.model_validate(payload)
    except ValidationError:
        return RawResult(payload=payload)
