"""Audio capture and push-to-talk session."""

from .audio import AudioInput
from .permissions import DevicePermissions
from .session import CaptureSession

__all__ = [
    'AudioInput',
    'DevicePermissions',
    'CaptureSession'
]
