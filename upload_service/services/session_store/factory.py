from upload_service.core.config import Settings
from .base import SessionStore
from .memory import MemorySessionStore
from .sql import SqlSessionStore

def get_session_store(settings: Settings) -> SessionStore:
    if settings.SESSION_STORE == "sql":
        return SqlSessionStore(settings.DATABASE_URL)
    elif settings.SESSION_STORE == "memory":
        return MemorySessionStore()
    else:
        raise ValueError(f"Unknown SESSION_STORE: {settings.SESSION_STORE}")
