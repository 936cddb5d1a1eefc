import asyncio
import io
from contextlib import suppress

import pytest
from rich.console import Console

from chat.app import ChatApp
from chat.auth_client import AuthorizationFailed
from chat.connection import TransportClosed
from chat.routing import Location
from chat.token_store import MemoryStore
from chat.view import ChatView
from common.config import ClientConfig

from chat_fixtures import FakeAuthClient, FakeChatServer, frame, wait_for


def make_app(server, path="/", auth=None, store=None):
    out = io.StringIO()
    app = ChatApp(
        ClientConfig(server_url=server.http_url),
        store=store if store is not None else MemoryStore(),
        location=Location(path),
        auth_client=auth or FakeAuthClient(),
        view=ChatView(Console(file=out, force_terminal=False, width=120)),
    )
    return app, out


@pytest.mark.asyncio
async def test_no_credential_never_opens_a_connection():
    async with FakeChatServer().running() as server:
        app, _ = make_app(server, path="/chat")

        assert await app.open_session() is None
        assert app.location.path == "/"

        with pytest.raises(AuthorizationFailed):
            await app.open_session()

        assert app.session is None
        await asyncio.sleep(0.05)
        assert server.paths == []


@pytest.mark.asyncio
async def test_login_then_open_session_connects_with_stored_token():
    greeting = [frame("friends_fetched", {"friends": [{"username": "alice", "online": True}]})]
    async with FakeChatServer(greeting).running() as server:
        app, out = make_app(server, path="/")

        assert await app.login("john") is None
        assert app.location.path == "/chat"

        session = await app.open_session()
        assert session is not None
        task = asyncio.create_task(app.run_session())
        try:
            assert session.identity == "john"
            assert await wait_for(lambda: session.state.roster)
            assert server.paths == ["/ws?token=token-john"]
            assert session.state.online_friends() == ["alice"]

            assert await app.send_message("hi all") is True
            assert await wait_for(lambda: server.received)
            assert server.received == [{"type": "send_message", "payload": {"text": "hi all"}}]
        finally:
            await app.close_session()
            await asyncio.wait_for(task, timeout=5)

    assert "Hi john" in out.getvalue()
    assert "alice" in out.getvalue()


@pytest.mark.asyncio
async def test_logout_closes_connection_and_clears_credential():
    async with FakeChatServer().running() as server:
        store = MemoryStore()
        app, _ = make_app(server, path="/", store=store)
        await app.login("bob")
        session = await app.open_session()
        connection = session.connection
        task = asyncio.create_task(app.run_session())

        await app.logout()
        await asyncio.wait_for(task, timeout=5)

        assert app.session is None
        assert connection.is_open is False
        assert app.tokens.get() is None
        assert app.location.path == "/"
        assert await app.send_message("anyone?") is False


@pytest.mark.asyncio
async def test_server_close_reason_shown_and_session_discarded():
    async with FakeChatServer([frame("message_sent", {"text": "bye"})], close_reason="kicked").running() as server:
        app, out = make_app(server, path="/")
        await app.login("john")
        session = await app.open_session()

        with pytest.raises(TransportClosed) as exc_info:
            await asyncio.wait_for(app.run_session(), timeout=5)

    assert exc_info.value.reason == "kicked"
    assert app.session is None
    assert session.state.transcript == []
    assert "kicked" in out.getvalue()
    # credential survives; the next open_session re-authorizes
    assert app.tokens.get() == "token-john"


@pytest.mark.asyncio
async def test_navigating_away_closes_session():
    async with FakeChatServer().running() as server:
        app, _ = make_app(server, path="/chat")
        app.tokens.set(await app.sessions.auth_client.authenticate("john"))
        session = await app.open_session()
        task = asyncio.create_task(app.run_session())

        app.location.replace("/")
        await asyncio.wait_for(task, timeout=5)

        assert app.session is None
        assert session.connection.is_open is False
        with suppress(asyncio.CancelledError):
            await app._pending_close


@pytest.mark.asyncio
async def test_failed_close_after_navigation_is_logged(caplog):
    async with FakeChatServer().running() as server:
        app, _ = make_app(server, path="/chat")
        app.tokens.set(await app.sessions.auth_client.authenticate("john"))
        session = await app.open_session()
        real_close = session.connection.close

        async def broken_close():
            await real_close()
            raise RuntimeError("close blew up")

        session.connection.close = broken_close
        app.location.replace("/")
        with suppress(RuntimeError):
            await app._pending_close

    assert "Closing the session after navigation failed" in caplog.text
