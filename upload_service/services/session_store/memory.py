import threading
from datetime import datetime
from typing import Dict, List, Optional
from .base import SessionStore
from upload_service.models.session import UploadSession


class MemorySessionStore(SessionStore):
    """Keeps sessions in a dict; everything is lost when the process exits."""

    def __init__(self):
        self._sessions: Dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    def save(self, session: UploadSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session.model_copy(deep=True)

    def get(self, session_id: str) -> Optional[UploadSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def add_chunk(self, session_id: str, chunk_number: int) -> Optional[UploadSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.add_chunk(chunk_number)
            return session.model_copy(deep=True)

    def all(self) -> List[UploadSession]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sessions.values()]

    def expired(self, before: datetime) -> List[UploadSession]:
        return [s for s in self.all() if s.created_at < before]

    def close(self) -> None:
        with self._lock:
            self._sessions.clear()
