from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional


@dataclass
class FriendEntry:
    username: str
    online: bool


@dataclass
class TranscriptLine:
    text: str
    sender: Optional[str] = None


RenderCallback = Callable[["ChatState"], None]


@dataclass
class ChatState:
    """
    Local view of one chat session.

    Only EventDispatcher handlers mutate it; every mutation notifies the
    subscribed render callbacks.
    """
    roster: List[FriendEntry] = field(default_factory=list)
    transcript: List[TranscriptLine] = field(default_factory=list)
    _subscribers: List[RenderCallback] = field(default_factory=list, repr=False, compare=False)

    def subscribe(self, callback: RenderCallback) -> None:
        self._subscribers.append(callback)

    def _changed(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    def append_message(self, line: TranscriptLine) -> None:
        self.transcript.append(line)
        self._changed()

    def update_presence(self, username: str, online: bool) -> bool:
        """Update the matching entry in place. Returns False if not in roster."""
        for entry in self.roster:
            if entry.username == username:
                entry.online = online
                self._changed()
                return True
        return False

    def replace_roster(self, friends: Iterable[FriendEntry]) -> None:
        roster: List[FriendEntry] = []
        seen = set()
        for friend in friends:
            # later duplicates would break keyed presence updates
            if friend.username in seen:
                continue
            seen.add(friend.username)
            roster.append(FriendEntry(friend.username, friend.online))
        self.roster = roster
        self._changed()

    def online_friends(self) -> List[str]:
        return [entry.username for entry in self.roster if entry.online]

    def clear(self) -> None:
        self.roster = []
        self.transcript = []
        self._subscribers.clear()
