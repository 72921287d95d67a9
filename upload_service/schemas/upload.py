from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Optional

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class InitSessionRequest(CamelModel):
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    total_chunks: Optional[int] = None
    upload_id: Optional[str] = None
    mime_type: Optional[str] = None
    file_hash: Optional[str] = None

class InitSessionResponse(CamelModel):
    success: bool = True
    session_id: str
    message: str = "Upload session initialized"

class ChunkUploadResponse(CamelModel):
    success: bool = True
    chunk_number: int
    message: str

class CompleteSessionRequest(CamelModel):
    session_id: Optional[str] = None
    uploaded_chunks: Optional[List[int]] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None

class CompleteSessionResponse(CamelModel):
    success: bool = True
    file_name: str
    original_name: str
    file_path: str
    file_size: int
    message: str = "File uploaded and assembled successfully"

class CleanupRequest(CamelModel):
    upload_id: Optional[str] = None

class CleanupResponse(CamelModel):
    success: bool = True
    message: str

class SessionStatus(CamelModel):
    file_name: str
    file_size: int
    total_chunks: int
    uploaded_chunks: List[int]
    progress: int
    created_at: datetime

class SessionStatusResponse(CamelModel):
    success: bool = True
    session: SessionStatus

class ErrorResponse(CamelModel):
    success: bool = False
    status: str
    message: str
    missing_chunks: Optional[List[int]] = None
