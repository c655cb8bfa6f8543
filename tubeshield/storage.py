import abc
import itertools
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

TITLE_MAX_CHARS = 50


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return uuid.uuid4().hex


def session_title(message: str) -> str:
    if len(message) > TITLE_MAX_CHARS:
        return message[:TITLE_MAX_CHARS] + "..."
    return message


class ChatSession:
    def __init__(self, id: int, session_id: str, title: Optional[str], created_at: datetime):
        self.id = id
        self.session_id = session_id
        self.title = title
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "title": self.title,
            "createdAt": self.created_at.isoformat(),
        }


class ChatMessage:
    def __init__(self, id: int, session_id: str, role: str, content: str, created_at: datetime):
        self.id = id
        self.session_id = session_id
        self.role = role
        self.content = content
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
        }


class SessionStore(abc.ABC):
    """Chat session persistence used by the chat routes.

    Implementations must make each single call atomic; nothing here spans
    more than one call.
    """

    @abc.abstractmethod
    def create_session(self, session_id: str, title: Optional[str] = None) -> ChatSession:
        ...

    @abc.abstractmethod
    def get_session(self, session_id: str) -> Optional[ChatSession]:
        ...

    @abc.abstractmethod
    def append_message(self, session_id: str, role: str, content: str) -> ChatMessage:
        ...

    @abc.abstractmethod
    def list_messages(self, session_id: str) -> List[ChatMessage]:
        ...

    @abc.abstractmethod
    def list_sessions(self) -> List[ChatSession]:
        """Newest first."""


class MemorySessionStore(SessionStore):
    """Process-local store. Everything is lost on restart."""

    def __init__(self):
        self._sessions: Dict[str, ChatSession] = {}
        self._messages: Dict[str, List[ChatMessage]] = {}
        self._session_ids = itertools.count(1)
        self._message_ids = itertools.count(1)
        self._lock = threading.Lock()

    def create_session(self, session_id: str, title: Optional[str] = None) -> ChatSession:
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None:
                return existing
            session = ChatSession(next(self._session_ids), session_id, title, _now())
            self._sessions[session_id] = session
            self._messages.setdefault(session_id, [])
            return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def append_message(self, session_id: str, role: str, content: str) -> ChatMessage:
        with self._lock:
            message = ChatMessage(next(self._message_ids), session_id, role, content, _now())
            self._messages.setdefault(session_id, []).append(message)
            return message

    def list_messages(self, session_id: str) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages.get(session_id, ()))

    def list_sessions(self) -> List[ChatSession]:
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: (s.created_at, s.id), reverse=True)
