"""Dispatch of relay requests and push-to-talk actions."""

from .dispatcher import Dispatcher

__all__ = [
    "Dispatcher"
]
