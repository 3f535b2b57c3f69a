"""Maps relay requests and push-to-talk actions to capabilities."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

from pubsub import pub

from ..capture.session import CaptureSession
from ..errors import CapabilityError, ResponsePostError
from ..models.capture import CaptureOutcome
from ..models.relay import (
    RelayRequest,
    RelayResult,
    RequestParameters,
    RawResult,
    TranscriptionResult,
    TRANSCRIBE_AUDIO,
    parse_result,
)
from ..relay.client import RelayClient, RELAY_REQUEST_TOPIC

logger = logging.getLogger(__name__)

Capability = Callable[[RequestParameters], Awaitable[RelayResult]]


class Dispatcher:
    """Runs the capability for each relay request and posts its result.

    Responses are fire-and-forget: a failed post is logged, never retried,
    and the pending slot is cleared either way.
    """

    def __init__(self,
                 client: RelayClient,
                 session: CaptureSession,
                 default_seconds: float = 5.0,
                 sent_display_seconds: float = 3.0,
                 request_topic: str = RELAY_REQUEST_TOPIC):
        """Initialize dispatcher.

        Args:
            client: Relay client used to respond and push events
            session: Capture session shared by relay requests and push-to-talk
            default_seconds: Recording length when a request gives none
            sent_display_seconds: How long ``recently_sent`` stays set
            request_topic: Pub/sub topic carrying decoded relay requests
        """
        self.client = client
        self.session = session
        self.default_seconds = default_seconds
        self.sent_display_seconds = sent_display_seconds
        self.request_topic = request_topic

        self.capabilities: Dict[str, Capability] = {
            TRANSCRIBE_AUDIO: self._transcribe_audio,
        }

        self.is_sending = False
        self.recently_sent = False
        self.last_sent_text = ""
        self._clear_sent_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Future] = set()
        self._relay_captures = 0

        pub.subscribe(self.on_relay_request, request_topic)

    def register(self, request_type: str, capability: Capability) -> None:
        """Register (or replace) the capability for ``request_type``."""
        self.capabilities[request_type] = capability
        logger.info(f"Registered capability for '{request_type}'")

    def on_relay_request(self, request: RelayRequest) -> None:
        """Pub/sub listener: handle the request in its own task."""
        task = asyncio.ensure_future(self.handle(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, request: RelayRequest) -> RelayResult:
        """Invoke the capability for ``request`` and respond with its result."""
        logger.info(f"Handling request #{request.id} ({request.type})")
        capability = self.capabilities.get(request.type)
        try:
            if capability is None:
                logger.warning(f"No capability for request type '{request.type}'")
                result = RawResult(payload={"error": f"Unsupported request type: {request.type}"})
            else:
                try:
                    result = await capability(request.parameters)
                    if isinstance(result, dict):
                        result = parse_result(request.type, result)
                except CapabilityError as e:
                    logger.error(f"Capability '{request.type}' failed: {e}")
                    result = RawResult(payload={"error": str(e)})

            try:
                await self.client.respond(request.id, request.type, result)
            except ResponsePostError as e:
                logger.warning(f"Response to request #{request.id} not delivered: {e}")
        finally:
            self.client.clear_pending(request.id)
        return result

    async def toggle_push_to_talk(self) -> Optional[CaptureOutcome]:
        """Start recording, or stop it and push the transcript as an event.

        Returns:
            The captured outcome when a recording was stopped, else None
        """
        if self.session.is_recording:
            if self._relay_captures:
                logger.info("Recording belongs to a relay request; ignoring push-to-talk")
                return None
            return await self._finish_push_to_talk()

        if self.is_sending:
            logger.debug("Still sending previous transcript; ignoring toggle")
            return None
        if not self.session.has_permission():
            if not await self.session.request_permissions():
                return None
        self.session.start()
        return None

    async def shutdown(self) -> None:
        """Stop listening for requests and cancel in-flight handlers."""
        pub.unsubscribe(self.on_relay_request, self.request_topic)
        if self._clear_sent_handle is not None:
            self._clear_sent_handle.cancel()
            self._clear_sent_handle = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _transcribe_audio(self, parameters: RequestParameters) -> RelayResult:
        seconds = parameters.seconds if parameters.seconds else self.default_seconds
        self._relay_captures += 1
        try:
            outcome = await self.session.capture_for(seconds)
        finally:
            self._relay_captures -= 1
        return TranscriptionResult(text=outcome.text, duration_seconds=outcome.duration)

    async def _finish_push_to_talk(self) -> CaptureOutcome:
        outcome = self.session.stop()
        if not outcome.text:
            logger.info("Push-to-talk produced no text; nothing sent")
            return outcome

        self.last_sent_text = outcome.text
        self.is_sending = True
        try:
            await self.client.push_audio_event(outcome.text, outcome.duration)
            self._mark_recently_sent()
        except ResponsePostError as e:
            logger.warning(f"Push-to-talk event not delivered: {e}")
        finally:
            self.is_sending = False
        return outcome

    def _mark_recently_sent(self) -> None:
        self.recently_sent = True
        if self._clear_sent_handle is not None:
            self._clear_sent_handle.cancel()
        loop = asyncio.get_running_loop()
        self._clear_sent_handle = loop.call_later(self.sent_display_seconds, self._clear_recently_sent)

    def _clear_recently_sent(self) -> None:
        self.recently_sent = False
        self._clear_sent_handle = None
