from pydantic import BaseModel
from typing import Dict, List, Literal
import threading

DEFAULT_MAX_HISTORY = 20


# Define Message structure for better type safety
class Message(BaseModel):
    """A turn in the conversation."""

    role: Literal["user", "assistant"]
    content: str


class SessionStore:
    """
    In-memory conversation history keyed by session id.

    Each history is a sliding window of at most ``max_entries`` turns; the
    oldest turns are dropped first and the remaining order is preserved.
    Histories are created lazily and live only as long as the process.
    All access goes through one lock, so concurrent callers cannot corrupt
    the mapping or a single session's list.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_HISTORY):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._sessions: Dict[str, List[Message]] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> List[Message]:
        """Register the session if needed and return a copy of its history."""
        with self._lock:
            return list(self._sessions.setdefault(session_id, []))

    def history(self, session_id: str) -> List[Message]:
        """Return a copy of the session history (empty if unknown)."""
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def append(self, session_id: str, message: Message) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, []).append(message)
            self._trim(session_id)

    def enforce_cap(self, session_id: str) -> None:
        with self._lock:
            self._trim(session_id)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def _trim(self, session_id: str) -> None:
        history = self._sessions.get(session_id)
        if history and len(history) > self.max_entries:
            del history[: len(history) - self.max_entries]
