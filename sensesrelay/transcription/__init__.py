"""Transcription module for SensesRelay."""

from .base import AbstractTranscriptionBackend, TranscriptUpdate
from .google_backend import GoogleStreamingBackend

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptUpdate",
    "GoogleStreamingBackend",
]
