"""
Per-user pending upload state.

A user who sends `upload [category] name` gets an entry here until the next
payload arrives. Entries never expire: an abandoned upload stays until it is
overwritten by another `upload` or the process restarts.
"""
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple


class SessionStore(ABC):
    """Maps a user id to the file name awaiting that user's next payload."""

    @abstractmethod
    def begin(self, user_id: str, file_name: str) -> None:
        """Start (or replace) the pending upload for a user."""

    @abstractmethod
    def peek(self, user_id: str) -> Tuple[Optional[str], bool]:
        """Return (file_name, found) without changing state."""

    @abstractmethod
    def consume(self, user_id: str) -> None:
        """Drop the pending upload for a user, if any."""


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Every request thread of the server shares one
    instance, so all access goes through a single lock.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, str] = {}
        self._lock = threading.Lock()

    def begin(self, user_id: str, file_name: str) -> None:
        with self._lock:
            self._pending[user_id] = file_name

    def peek(self, user_id: str) -> Tuple[Optional[str], bool]:
        with self._lock:
            if user_id in self._pending:
                return self._pending[user_id], True
            return None, False

    def consume(self, user_id: str) -> None:
        with self._lock:
            self._pending.pop(user_id, None)
