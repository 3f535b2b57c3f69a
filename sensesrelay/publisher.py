"""Pub/sub setup shared by every component that publishes state."""

import logging

from pubsub import pub

logger = logging.getLogger(__name__)


class LoggingListenerExcHandler:
    """Logs a failing listener and lets delivery continue.

    Without a handler pypubsub re-raises listener exceptions inside
    ``sendMessage``, i.e. inside the publisher's own task or callback.
    """

    def __call__(self, listener_id: str, topic_obj) -> None:
        logger.error(f"Listener {listener_id} failed on topic '{topic_obj.getName()}'", exc_info=True)


def install_listener_exc_handler() -> None:
    """Install the logging handler unless it is already in place."""
    if not isinstance(pub.getListenerExcHandler(), LoggingListenerExcHandler):
        pub.setListenerExcHandler(LoggingListenerExcHandler())
