"""Relay event stream client and parser."""

from .parser import StreamParser
from .client import RelayClient

__all__ = [
    'StreamParser',
    'RelayClient'
]
