from __future__ import annotations
import asyncio
from typing import Any, Dict, Optional

import aiohttp

from common.envelope import ChatError
from common.log import get_logger

logger = get_logger(__name__)


class AuthenticationFailed(ChatError):
    """The server refused to issue a credential."""
    pass


class AuthorizationFailed(ChatError):
    """The server rejected the credential (expired/invalid)."""
    pass


class CredentialMissing(AuthorizationFailed):
    """No credential stored; handled exactly like a rejected one."""

    def __init__(self) -> None:
        super().__init__("accessToken is required")


class AuthClient:
    """
    HTTP client for the two auth endpoints:

    POST /authenticate  {"username"}                  -> {"accessToken"}
    POST /authorize     Authorization: Bearer <token> -> {"username"}
    """

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _post(self, path: str, *, json: Optional[Dict[str, Any]] = None,
                    headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """POST and decode the JSON body. Raises aiohttp.ClientError / ValueError."""
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(f"{self.base_url}{path}", json=json, headers=headers) as resp:
                resp.raise_for_status()
                body = await resp.json(content_type=None)
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object from {path}, got {body!r}")
        return body

    async def authenticate(self, username: str) -> str:
        """Exchange a username for an access token"""
        try:
            body = await self._post("/authenticate", json={"username": username})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("authenticate failed: %s", e, extra={"username": username})
            raise AuthenticationFailed(str(e)) from e

        token = body.get("accessToken")
        if not isinstance(token, str) or not token:
            raise AuthenticationFailed("response carries no accessToken")
        return token

    async def authorize(self, credential: str) -> str:
        """Validate the credential and return the username it belongs to"""
        try:
            body = await self._post("/authorize", headers={"Authorization": f"Bearer {credential}"})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("authorize failed: %s", e)
            raise AuthorizationFailed(str(e)) from e

        username = body.get("username")
        if not isinstance(username, str) or not username:
            raise AuthorizationFailed("response carries no username")
        return username
