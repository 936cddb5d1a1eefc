#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from contextlib import suppress
from pathlib import Path
from typing import Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.markup import escape

from chat.app import ChatApp
from chat.auth_client import AuthClient, AuthenticationFailed, AuthorizationFailed
from chat.connection import TransportClosed, TransportError
from chat.routing import Location
from chat.view import ChatView
from common.config import ClientConfig, load_config
from common.log import configure_root_logging, get_logger

app = typer.Typer(help="chatline - terminal chat client")
console = Console()
logger = get_logger(__name__)

HELP_TEXT = "/friends, /logout, /quit; anything else is sent as a message"


def _config(config_path: Optional[Path], server: Optional[str]) -> ClientConfig:
    try:
        return load_config(config_path).with_overrides(server_url=server)
    except (OSError, ValueError) as e:
        console.print(f"[red]Bad configuration[/]: {escape(str(e))}")
        raise typer.Exit(code=1)


def _app(config: ClientConfig, start: str) -> ChatApp:
    return ChatApp(
        config,
        location=Location(start),
        auth_client=AuthClient(config.server_url, timeout=config.request_timeout),
        view=ChatView(console),
    )


ConfigOption = typer.Option(None, "--config", help="Path to config.yaml")
ServerOption = typer.Option(None, "--server", help="HTTP base URL of the chat server")


@app.command()
def login(
    username: str = typer.Argument(..., help="Name to log in as"),
    config_path: Optional[Path] = ConfigOption,
    server: Optional[str] = ServerOption,
):
    """Obtain an access token for USERNAME."""
    config = _config(config_path, server)
    chat = _app(config, config.public_route)
    try:
        asyncio.run(chat.login(username))
    except (AuthenticationFailed, AuthorizationFailed) as e:
        console.print(f"[red]Login failed[/]: {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Logged in[/] as {escape(username)}; now at {escape(chat.location.path)}")


@app.command()
def logout(
    config_path: Optional[Path] = ConfigOption,
    server: Optional[str] = ServerOption,
):
    """Forget the stored access token."""
    config = _config(config_path, server)
    chat = _app(config, config.private_route)
    asyncio.run(chat.logout())
    console.print("Logged out")


@app.command()
def whoami(
    config_path: Optional[Path] = ConfigOption,
    server: Optional[str] = ServerOption,
):
    """Show who the stored access token belongs to."""
    config = _config(config_path, server)
    chat = _app(config, config.private_route)
    identity = asyncio.run(chat.sessions.authorize())
    if identity is None:
        console.print("[red]Not logged in[/]; run `chatline login USERNAME`")
        raise typer.Exit(code=1)
    console.print(identity, markup=False)


@app.command()
def run(
    config_path: Optional[Path] = ConfigOption,
    server: Optional[str] = ServerOption,
):
    """Open the chat and stay connected until /quit."""
    config = _config(config_path, server)
    chat = _app(config, config.private_route)

    async def main_loop() -> None:
        try:
            session = await chat.open_session()
        except TransportError as e:
            chat.view.error(str(e))
            return
        if session is None:
            chat.view.error("Not logged in; run `chatline login USERNAME`")
            return

        chat.view.status(HELP_TEXT)
        recv_task = asyncio.create_task(chat.run_session())
        try:
            while not recv_task.done():
                input_task = asyncio.ensure_future(ainput(": "))
                done, _ = await asyncio.wait({input_task, recv_task}, return_when=asyncio.FIRST_COMPLETED)
                if input_task not in done:
                    input_task.cancel()
                    break
                line = input_task.result().strip()
                if not line:
                    continue
                if line in {"/quit", "/exit"}:
                    break
                if line == "/help":
                    chat.view.status(HELP_TEXT)
                    continue
                if line == "/friends":
                    if chat.session is not None:
                        console.print(chat.view.roster_table(chat.session.state))
                    continue
                if line == "/logout":
                    await chat.logout()
                    chat.view.status("Logged out")
                    break
                if line.startswith("/"):
                    chat.view.error(f"Unknown command {line.split()[0]}. /help")
                    continue
                if not await chat.send_message(line):
                    chat.view.error("Not connected; message not sent")
        finally:
            await chat.close_session()
            # the close reason was already shown by the view
            with suppress(asyncio.CancelledError, TransportClosed):
                await recv_task

    asyncio.run(main_loop())


def main() -> None:
    configure_root_logging("WARNING")
    app()


if __name__ == "__main__":
    main()
