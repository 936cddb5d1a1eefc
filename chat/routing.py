from __future__ import annotations
from typing import Callable, List

from common.log import get_logger

logger = get_logger(__name__)

NavigationListener = Callable[[str, str], None]


class Location:
    """Current route of the client, with replace-style navigation"""

    def __init__(self, path: str = "/") -> None:
        self.path = path
        self._listeners: List[NavigationListener] = []

    def subscribe(self, listener: NavigationListener) -> None:
        """listener(old_path, new_path) runs after every navigation"""
        self._listeners.append(listener)

    def replace(self, path: str) -> None:
        old = self.path
        self.path = path
        logger.info("Navigated %s -> %s", old, path, extra={"route": path})
        for listener in list(self._listeners):
            listener(old, path)


class RouteGuard:
    def __init__(self, location: Location) -> None:
        self.location = location

    def ensure(self, path: str) -> bool:
        """
        True if already at `path`. Otherwise navigate there and return False;
        the caller's continuation is superseded by the navigation.
        """
        if self.location.path == path:
            return True
        self.location.replace(path)
        return False
