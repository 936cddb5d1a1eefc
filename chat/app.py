from __future__ import annotations
import asyncio
from typing import Optional

from chat.auth_client import AuthClient, AuthorizationFailed
from chat.connection import ConnectionManager
from chat.dispatcher import EventDispatcher
from chat.routing import Location, RouteGuard
from chat.session import Session, SessionService
from chat.state import ChatState
from chat.token_store import JsonFileStore, KeyValueStore, TokenStore
from chat.view import ChatView
from common.config import ClientConfig
from common.log import get_logger

logger = get_logger(__name__)


def _log_close_failure(task: "asyncio.Task[None]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Closing the session after navigation failed", exc_info=task.exception())


class ChatApp:
    """
    Wires the client together:

        SessionService.authorize() -> ConnectionManager.connect(credential)
        -> inbound envelopes -> EventDispatcher -> ChatState -> ChatView
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        store: Optional[KeyValueStore] = None,
        location: Optional[Location] = None,
        auth_client: Optional[AuthClient] = None,
        view: Optional[ChatView] = None,
    ) -> None:
        self.config = config
        self.tokens = TokenStore(store if store is not None else JsonFileStore(config.storage_path))
        self.location = location or Location(config.public_route)
        self.view = view or ChatView()
        self.sessions = SessionService(
            auth_client or AuthClient(config.server_url, timeout=config.request_timeout),
            self.tokens,
            RouteGuard(self.location),
            public_route=config.public_route,
            private_route=config.private_route,
        )
        self.session: Optional[Session] = None
        self._pending_close: Optional[asyncio.Task] = None
        self.location.subscribe(self._on_navigate)

    async def login(self, username: str) -> Optional[str]:
        return await self.sessions.authenticate(username)

    async def open_session(self) -> Optional[Session]:
        """
        Authorize and, only on success, open the session's connection.

        Returns None when authorization ended in a navigation instead.
        """
        if self.session is not None:
            return self.session

        identity = await self.sessions.authorize()
        if identity is None:
            return None
        credential = self.tokens.get()
        if credential is None:
            raise AuthorizationFailed("credential vanished during authorization")

        state = ChatState()
        state.subscribe(self.view.render)
        dispatcher = EventDispatcher(state)
        connection = ConnectionManager(
            self.config.ws_url,
            dispatcher,
            on_close=self._on_transport_closed,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
        )
        await connection.connect(credential)

        self.session = Session(identity, credential, state, dispatcher, connection)
        self.view.greet(identity)
        return self.session

    async def send_message(self, text: str) -> bool:
        if self.session is None:
            return False
        envelope = self.session.dispatcher.encode_send_message(text)
        return await self.session.connection.send(envelope)

    async def close_session(self) -> None:
        session, self.session = self.session, None
        if session is not None:
            await session.close()
            self.view.reset()

    async def logout(self) -> None:
        await self.close_session()
        try:
            await self.sessions.logout()
        except AuthorizationFailed:
            # already on the public route; nothing left to recover
            pass

    def _on_transport_closed(self, reason: str) -> None:
        self.view.error(reason or "Disconnected")
        if self.session is not None:
            self.session.state.clear()
            self.session = None
            self.view.reset()

    def _on_navigate(self, old: str, new: str) -> None:
        if new != self.config.private_route and self.session is not None:
            self._pending_close = asyncio.ensure_future(self.close_session())
            self._pending_close.add_done_callback(_log_close_failure)

    async def run_session(self) -> str:
        """
        Run the active session's receive loop until the connection closes.

        Raises TransportClosed when the server or network ended it.
        """
        if self.session is None:
            raise RuntimeError("no open session")
        return await self.session.connection.run()
