from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from upload_service.models.session import UploadSession

class SessionStore(ABC):
    @abstractmethod
    def save(self, session: UploadSession) -> None:
        pass

    @abstractmethod
    def get(self, session_id: str) -> Optional[UploadSession]:
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def add_chunk(self, session_id: str, chunk_number: int) -> Optional[UploadSession]:
        """Record a received chunk; returns None if the session vanished meanwhile."""
        pass

    @abstractmethod
    def all(self) -> List[UploadSession]:
        pass

    @abstractmethod
    def expired(self, before: datetime) -> List[UploadSession]:
        pass

    def close(self) -> None:
        pass
