"""Long-lived relay client: event stream in, correlated responses out."""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Union

import aiohttp
from pubsub import pub

from .parser import StreamParser
from ..publisher import install_listener_exc_handler
from ..errors import TransportError, ResponsePostError
from ..models.connection import ConnectionState, ConnectionEvent, reduce_connection
from ..models.events import TransportClosed, Disconnected
from ..models.relay import RelayRequest, RelayResult, result_payload

logger = logging.getLogger(__name__)

EVENTS_PATH = "phone/events"
RESPOND_PATH = "phone/respond"
PUSH_EVENT_PATH = "events"

AUDIO_TRANSCRIPTION_EVENT = "audio_transcription"

RELAY_STATE_TOPIC = "connection.state"
RELAY_REQUEST_TOPIC = "relay.request"

# No read timeout on the event stream; it is expected to stay open.
STREAM_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=None, sock_read=None)


class RelayClient:
    """Client for the relay server.

    Holds one streaming connection at a time, reconnecting after a fixed
    delay whenever it completes. The delay does not grow and retries never
    stop. Decoded requests land in a single pending slot; a newer request
    replaces an older one.
    """

    def __init__(self,
                 base_url: str,
                 token: Optional[str] = None,
                 reconnect_delay: float = 3.0,
                 session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
                 state_topic: str = RELAY_STATE_TOPIC,
                 request_topic: str = RELAY_REQUEST_TOPIC):
        """Initialize relay client.

        Args:
            base_url: Relay server root URL
            token: Optional bearer credential
            reconnect_delay: Seconds to wait before reconnecting
            session_factory: Creates the aiohttp sessions used for requests
            state_topic: Pub/sub topic for ConnectionState snapshots
            request_topic: Pub/sub topic for decoded RelayRequests
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.reconnect_delay = reconnect_delay
        self.session_factory = session_factory
        self.state_topic = state_topic
        self.request_topic = request_topic

        self.state = ConnectionState()
        self.pending_request: Optional[RelayRequest] = None

        self._parser = StreamParser()
        self._stream_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0

        install_listener_exc_handler()

    @property
    def is_connected(self) -> bool:
        return self.state.connected

    def start(self) -> None:
        """Open the event stream. Must be called from the event loop."""
        logger.info(f"Starting relay client for {self.base_url}")
        self.connect()

    async def shutdown(self) -> None:
        """Disconnect and wait for the stream task to finish."""
        task = self._stream_task
        self.disconnect()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        logger.info("Relay client shut down")

    def connect(self) -> None:
        """Replace any existing connection with a fresh one. Never raises."""
        self.disconnect()
        loop = asyncio.get_running_loop()
        self._parser.reset()
        generation = self._generation
        self._stream_task = loop.create_task(self._run_stream(generation))
        logger.info(f"Connecting to {self._url(EVENTS_PATH)}")

    def disconnect(self) -> None:
        """Cancel the reconnect timer and the in-flight stream. Idempotent."""
        self._cancel_reconnect()
        self._generation += 1
        if self._stream_task is not None:
            self._stream_task.cancel()
            self._stream_task = None
        self._apply(Disconnected())

    async def respond(self, request_id: int, request_type: str,
                      result: Union[RelayResult, Dict[str, Any]]) -> None:
        """Post the result of a relay request.

        Raises:
            ResponsePostError: If the post fails or the status is not 200
        """
        body = {
            "id": request_id,
            "response": {
                "type": request_type,
                "result": result_payload(result),
            },
        }
        await self._post(RESPOND_PATH, body)
        logger.info(f"Responded to request #{request_id} ({request_type})")

    async def push_event(self, kind: str, data: Dict[str, Any]) -> None:
        """Post a standalone event that answers no request.

        Raises:
            ResponsePostError: If the post fails or the status is not 200
        """
        await self._post(PUSH_EVENT_PATH, {"type": kind, "data": data})
        logger.info(f"Pushed event '{kind}'")

    async def push_audio_event(self, text: str, duration: float) -> None:
        """Push a locally captured transcription."""
        await self.push_event(AUDIO_TRANSCRIPTION_EVENT, {
            "text": text,
            "duration_seconds": duration,
            "source": "phone_mic",
        })

    def clear_pending(self, request_id: Optional[int] = None) -> None:
        """Empty the pending slot, only if it still holds ``request_id`` when given."""
        if self.pending_request is None:
            return
        if request_id is not None and self.pending_request.id != request_id:
            return
        self.pending_request = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _headers(self, accept: str = "application/json") -> Dict[str, str]:
        headers = {"Accept": accept}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _run_stream(self, generation: int) -> None:
        """Own one connection from open to completion."""
        error = None
        try:
            async with self.session_factory(timeout=STREAM_TIMEOUT) as session:
                async with session.get(self._url(EVENTS_PATH),
                                       headers=self._headers("text/event-stream")) as response:
                    if response.status != 200:
                        raise TransportError(f"Event stream returned HTTP {response.status}",
                                             status=response.status)
                    await self._consume(response)
            logger.info("Event stream closed by server")
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, TransportError) as e:
            error = str(e) or type(e).__name__
            logger.warning(f"Event stream failed: {error}")

        if generation == self._generation:
            self._on_transport_closed(error)

    async def _consume(self, response: aiohttp.ClientResponse) -> None:
        """Move bytes through a channel into the parser, in arrival order."""
        chunks: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        reader = asyncio.ensure_future(self._pump(response, chunks))
        try:
            while True:
                chunk = await chunks.get()
                if chunk is None:
                    break
                for event in self._parser.feed(chunk):
                    logger.debug(f"Stream event: {event.event}")
                    self._apply(event)
            # Surface any transport error raised by the reader.
            await reader
        finally:
            if not reader.done():
                reader.cancel()

    @staticmethod
    async def _pump(response: aiohttp.ClientResponse, chunks: asyncio.Queue) -> None:
        try:
            async for chunk in response.content.iter_any():
                chunks.put_nowait(chunk)
        finally:
            chunks.put_nowait(None)

    def _on_transport_closed(self, error: Optional[str] = None) -> None:
        self._stream_task = None
        self._apply(TransportClosed(error))
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect)
        logger.info(f"Reconnecting in {self.reconnect_delay}s")

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _apply(self, event: ConnectionEvent) -> None:
        new_state, request = reduce_connection(self.state, event)
        if new_state != self.state:
            self.state = new_state
            pub.sendMessage(self.state_topic, state=new_state)
        if request is not None:
            if self.pending_request is not None:
                logger.info(f"Request #{self.pending_request.id} superseded by #{request.id}")
            self.pending_request = request
            pub.sendMessage(self.request_topic, request=request)

    async def _post(self, path: str, body: Dict[str, Any]) -> None:
        url = self._url(path)
        try:
            async with self.session_factory() as session:
                async with session.post(url, json=body, headers=self._headers()) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise ResponsePostError(
                            f"POST {path} failed: {response.status} - {error_text}",
                            status=response.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ResponsePostError(f"POST {path} failed: {e}") from e
        except (TypeError, ValueError) as e:
            raise ResponsePostError(f"POST {path} failed: body is not valid JSON: {e}") from e
