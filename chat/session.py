from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from chat.auth_client import AuthClient, AuthorizationFailed, CredentialMissing
from chat.routing import RouteGuard
from chat.state import ChatState
from chat.token_store import TokenStore
from common.log import get_logger

if TYPE_CHECKING:
    from chat.connection import ConnectionManager
    from chat.dispatcher import EventDispatcher

logger = get_logger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    AUTH_FAILED = "auth_failed"


@dataclass
class Session:
    """Everything that lives exactly as long as one authorized session"""
    identity: str
    credential: str
    state: ChatState
    dispatcher: "EventDispatcher"
    connection: "ConnectionManager"

    async def close(self) -> None:
        await self.connection.close()
        self.state.clear()


class SessionService:
    """
    Authorization state machine:

        UNAUTHENTICATED -> AUTHORIZING -> AUTHORIZED(identity)
                                       -> AUTH_FAILED

    authorize() is the single place that decides between "redirect" and
    "report to caller"; authenticate() and logout() both finish through it.
    """

    def __init__(
        self,
        auth_client: AuthClient,
        tokens: TokenStore,
        guard: RouteGuard,
        *,
        public_route: str = "/",
        private_route: str = "/chat",
    ) -> None:
        self.auth_client = auth_client
        self.tokens = tokens
        self.guard = guard
        self.public_route = public_route
        self.private_route = private_route
        self.state = SessionState.UNAUTHENTICATED
        self.identity: Optional[str] = None

    def _transition(self, state: SessionState, identity: Optional[str] = None) -> None:
        logger.debug("Session %s -> %s", self.state.value, state.value, extra={"username": identity or "-"})
        self.state = state
        self.identity = identity

    async def authorize(self) -> Optional[str]:
        """
        Validate the stored credential.

        Returns the identity when the caller is already on the private route,
        None when a navigation took over. Raises AuthorizationFailed only when
        the failure could not be recovered by redirecting to the public route.
        """
        if self.state is SessionState.AUTHORIZING:
            # overlapping calls are not serialized; the last to finish wins
            logger.warning("authorize() called while another authorization is in flight")

        self._transition(SessionState.AUTHORIZING)
        try:
            credential = self.tokens.get()
            if credential is None:
                raise CredentialMissing()
            identity = await self.auth_client.authorize(credential)
        except AuthorizationFailed as e:
            self.tokens.clear()
            self._transition(SessionState.AUTH_FAILED)
            logger.info("Authorization failed: %s", e)
            if self.guard.ensure(self.public_route):
                raise
            return None

        self._transition(SessionState.AUTHORIZED, identity)
        logger.info("Authorized as %s", identity, extra={"username": identity})
        if self.guard.ensure(self.private_route):
            return identity
        return None

    async def authenticate(self, username: str) -> Optional[str]:
        """Obtain and store a new credential, then finish through authorize()"""
        # only an in-flight authorize is noticed; two overlapping
        # authenticate() calls race on the stored credential undetected
        if self.state is SessionState.AUTHORIZING:
            logger.warning("authenticate() called while an authorization is in flight")

        token = await self.auth_client.authenticate(username)
        self.tokens.set(token)
        logger.info("Obtained credential", extra={"username": username})
        return await self.authorize()

    async def logout(self) -> None:
        self.tokens.clear()
        self._transition(SessionState.UNAUTHENTICATED)
        await self.authorize()

    @property
    def is_authorized(self) -> bool:
        return self.state is SessionState.AUTHORIZED
