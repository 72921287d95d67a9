from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadSession(BaseModel):
    """Server-side record of an in-progress chunked upload."""

    session_id: str
    file_name: str
    file_size: int
    total_chunks: int
    uploaded_chunks: List[int] = Field(default_factory=list)
    mime_type: Optional[str] = None
    file_hash: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def add_chunk(self, chunk_number: int) -> None:
        if chunk_number not in self.uploaded_chunks:
            self.uploaded_chunks = sorted(self.uploaded_chunks + [chunk_number])

    def missing_chunks(self) -> List[int]:
        received = set(self.uploaded_chunks)
        return [n for n in range(1, self.total_chunks + 1) if n not in received]

    @property
    def progress(self) -> int:
        # percentage rounded half up
        return (len(self.uploaded_chunks) * 200 + self.total_chunks) // (2 * self.total_chunks)

    def owned_by(self, user_id: Optional[str]) -> bool:
        return self.user_id is None or user_id is None or self.user_id == user_id


class AssemblyResult(BaseModel):
    file_name: str
    original_name: str
    file_path: str
    file_size: int
