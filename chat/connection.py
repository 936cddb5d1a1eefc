from __future__ import annotations
import asyncio
import itertools
from typing import AsyncIterator, Callable, Optional, Union
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.protocol import State

from chat.dispatcher import EventDispatcher
from common.envelope import ChatError, Envelope, MalformedEnvelope, ProtocolViolation
from common.events import InboundEvent
from common.log import get_logger, log_envelope

logger = get_logger(__name__)

CloseCallback = Callable[[str], None]

_connection_ids = itertools.count(1)


class TransportError(ChatError):
    pass


class ConnectionAlreadyOpen(TransportError):
    pass


class TransportClosed(TransportError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason or "connection closed")
        self.reason = reason


class ConnectionManager:
    """
    Owns the single live WebSocket of a session.

    The credential is sent once, as the `token` query parameter of the
    upgrade request; the server binds the whole connection to that identity.
    Inbound frames are dispatched one at a time in arrival order. There is no
    reconnection: after a close the session has to be authorized again.
    """

    def __init__(
        self,
        ws_url: str,
        dispatcher: EventDispatcher,
        *,
        on_close: Optional[CloseCallback] = None,
        ping_interval: Optional[float] = 15,
        ping_timeout: Optional[float] = 45,
    ) -> None:
        self.ws_url = ws_url
        self.dispatcher = dispatcher
        self.on_close = on_close
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.websocket: Optional[websockets.ClientConnection] = None
        self.connection_id: Optional[str] = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self.websocket is not None and self.websocket.state is State.OPEN

    def url_for(self, credential: str) -> str:
        sep = "&" if "?" in self.ws_url else "?"
        return f"{self.ws_url}{sep}{urlencode({'token': credential})}"

    async def connect(self, credential: str) -> None:
        """Open the session's connection. Raises ConnectionAlreadyOpen if one is open."""
        if self.is_open:
            raise ConnectionAlreadyOpen(f"connection {self.connection_id} is already open")

        if self.ws_url.startswith("ws://"):
            # token ends up in the URL of a plaintext request
            logger.warning("Sending access token over unencrypted %s", self.ws_url)

        try:
            self.websocket = await websockets.connect(
                self.url_for(credential),
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
            )
        except (OSError, asyncio.TimeoutError, websockets.InvalidHandshake, websockets.InvalidURI) as e:
            raise TransportError(f"could not connect to {self.ws_url}: {e}") from e

        self._closing = False
        self.connection_id = f"ws-{next(_connection_ids)}"
        logger.info("Connected to %s", self.ws_url, extra={"connection_id": self.connection_id})

    async def send(self, envelope: Envelope) -> bool:
        """Transmit the envelope. Returns False, without raising, when not open."""
        if not self.is_open:
            log_envelope(logger, "debug", "Not connected, dropping outbound envelope", envelope)
            return False
        assert self.websocket is not None
        try:
            await self.websocket.send(envelope.to_json())
        except ConnectionClosed:
            log_envelope(logger, "warning", "Connection closed while sending", envelope,
                         connection_id=self.connection_id)
            return False
        log_envelope(logger, "debug", "Sent", envelope, connection_id=self.connection_id)
        return True

    @staticmethod
    def decode(raw: Union[str, bytes]) -> Envelope:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedEnvelope(f"frame is not UTF-8: {e}") from e
        return Envelope.from_json(raw)

    def _dispatch(self, envelope: Envelope) -> Optional[InboundEvent]:
        try:
            return self.dispatcher.dispatch(envelope)
        except ProtocolViolation as e:
            log_envelope(logger, "error", f"Dropped inbound envelope: {e}", envelope,
                         connection_id=self.connection_id)
            return None
        except Exception:
            # a failing handler or renderer costs this message only
            logger.exception("Handler failed for %s envelope", envelope.kind,
                             extra={"connection_id": self.connection_id})
            return None

    def on_message(self, raw: Union[str, bytes]) -> Optional[InboundEvent]:
        """Handle one inbound frame. Bad frames are logged and dropped."""
        try:
            envelope = self.decode(raw)
        except MalformedEnvelope as e:
            logger.error("Dropped inbound frame: %s", e, extra={"connection_id": self.connection_id})
            return None
        return self._dispatch(envelope)

    async def envelopes(self) -> AsyncIterator[Envelope]:
        """Inbound envelopes in arrival order; malformed frames are skipped"""
        assert self.websocket is not None
        async for raw in self.websocket:
            try:
                yield self.decode(raw)
            except MalformedEnvelope as e:
                logger.error("Dropped inbound frame: %s", e, extra={"connection_id": self.connection_id})

    async def run(self) -> str:
        """
        Consume the connection until it closes.

        Returns the close reason when we closed it ourselves. A close by the
        server or network runs the close callback, then raises TransportClosed.
        """
        if self.websocket is None:
            raise TransportError("not connected")
        websocket = self.websocket

        reason = ""
        try:
            async for envelope in self.envelopes():
                self._dispatch(envelope)
        except ConnectionClosedError as e:
            reason = e.rcvd.reason if e.rcvd is not None else ""
            logger.warning("Connection lost: %s", e, extra={"connection_id": self.connection_id})
        else:
            reason = websocket.close_reason or ""

        local_close = self._closing
        if self.websocket is websocket:
            self.websocket = None
        logger.info("Connection closed (%s)", reason or "no reason given",
                    extra={"connection_id": self.connection_id})
        if local_close:
            return reason
        if self.on_close is not None:
            self.on_close(reason)
        raise TransportClosed(reason)

    async def close(self) -> None:
        if self.websocket is None:
            return
        websocket = self.websocket
        self._closing = True
        self.websocket = None
        await websocket.close(code=1000)
