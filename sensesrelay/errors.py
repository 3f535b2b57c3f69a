"""Error taxonomy for the relay client and capture session."""


class SensesRelayError(Exception):
    """Base class for all SensesRelay errors."""


class TransportError(SensesRelayError):
    """Connection failed, dropped, or answered with a non-success status."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class ResponsePostError(TransportError):
    """Posting a response or event back to the relay failed."""


class ProtocolDecodeError(SensesRelayError):
    """A relay request payload could not be decoded."""


class CapabilityError(SensesRelayError):
    """A local capability (microphone, recognizer, permission) is unusable."""
