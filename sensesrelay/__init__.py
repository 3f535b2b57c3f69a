"""SensesRelay: relay client and push-to-talk capture for the senses server."""

__version__ = "0.1.0"
