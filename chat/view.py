from __future__ import annotations
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chat.state import ChatState


class ChatView:
    """Console rendering of a ChatState. Reads state, never mutates it."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self._printed_lines = 0
        self._last_roster: Optional[list] = None

    def greet(self, username: str) -> None:
        self.console.print(f"[bold green]Hi {escape(username)}[/]")

    def status(self, text: str) -> None:
        self.console.print(f"[dim]{escape(text)}[/]")

    def error(self, text: str) -> None:
        self.console.print(f"[red]{escape(text)}[/]")

    def roster_table(self, state: ChatState) -> Table:
        table = Table(title="Friends")
        table.add_column("User")
        table.add_column("Status")
        for entry in state.roster:
            status = "[green]online[/]" if entry.online else "[dim]offline[/]"
            table.add_row(escape(entry.username), status)
        return table

    def render(self, state: ChatState) -> None:
        """Print what changed since the last render"""
        for line in state.transcript[self._printed_lines:]:
            if line.sender:
                self.console.print(f"[bold cyan]{escape(line.sender)}[/]: {escape(line.text)}")
            else:
                self.console.print(escape(line.text))
        self._printed_lines = len(state.transcript)

        roster = [(e.username, e.online) for e in state.roster]
        if roster != self._last_roster:
            self._last_roster = roster
            self.console.print(self.roster_table(state))

    def reset(self) -> None:
        self._printed_lines = 0
        self._last_roster = None
