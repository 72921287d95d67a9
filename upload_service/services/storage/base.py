from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Optional

@dataclass
class AssembledFile:
    path: str
    size: int
    digest: Optional[str] = None

class BaseStorage(ABC):
    @abstractmethod
    async def prepare_session(self, upload_session_id: str, reset: bool = False) -> str:
        pass

    @abstractmethod
    async def save_chunk(self, upload_session_id: str, chunk_number: int, stream: BinaryIO) -> int:
        pass

    @abstractmethod
    async def assemble(self, upload_session_id: str, total_chunks: int,
                       hash_algorithm: Optional[str] = None) -> AssembledFile:
        pass

    @abstractmethod
    async def publish(self, file_path: str, file_name: str, user_id: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def delete_file(self, file_path: str) -> None:
        pass

    @abstractmethod
    async def cleanup_session(self, upload_session_id: str) -> dict:
        pass
