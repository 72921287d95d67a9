from fastapi import APIRouter, Depends, UploadFile, File, Form
from upload_service.api.dependencies import get_coordinator
from upload_service.core.exceptions import UploadError, InternalError
from upload_service.core.security import get_current_user_id
from upload_service.schemas.upload import (
    InitSessionRequest, InitSessionResponse,
    ChunkUploadResponse,
    CompleteSessionRequest, CompleteSessionResponse,
    CleanupRequest, CleanupResponse,
    SessionStatus, SessionStatusResponse,
)
from upload_service.services.upload_coordinator import UploadCoordinator
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/init", response_model=InitSessionResponse)
async def init_session(
    req: InitSessionRequest,
    user_id: str = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    """
    POST /api/upload/init - Initialize a chunked upload session
    """
    try:
        session = await coordinator.initialize(
            file_name=req.file_name,
            file_size=req.file_size,
            total_chunks=req.total_chunks,
            session_id=req.upload_id,
            mime_type=req.mime_type,
            file_hash=req.file_hash,
            user_id=user_id,
        )
    except UploadError:
        raise
    except Exception as e:
        logger.exception(f"Error initializing upload session: {str(e)}")
        raise InternalError("Failed to initialize upload session") from e
    return InitSessionResponse(session_id=session.session_id)

@router.post("/chunk", response_model=ChunkUploadResponse)
async def upload_chunk(
    session_id: Optional[str] = Form(None, alias="sessionId"),
    chunk_number: Optional[int] = Form(None, alias="chunkNumber"),
    total_chunks: Optional[int] = Form(None, alias="totalChunks"),
    chunk: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    """
    POST /api/upload/chunk - Upload a single chunk

    totalChunks is accepted for compatibility; the session's declared count is authoritative.
    """
    try:
        received = await coordinator.receive_chunk(
            session_id=session_id,
            chunk_number=chunk_number,
            stream=chunk.file if chunk is not None else None,
            user_id=user_id,
        )
    except UploadError:
        raise
    except Exception as e:
        logger.exception(f"Error uploading chunk: {str(e)}")
        raise InternalError("Failed to upload chunk") from e
    finally:
        if chunk is not None:
            await chunk.close()
    return ChunkUploadResponse(
        chunk_number=received,
        message=f"Chunk {received} uploaded successfully",
    )

@router.post("/complete", response_model=CompleteSessionResponse)
async def complete_session(
    req: CompleteSessionRequest,
    user_id: str = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    """
    POST /api/upload/complete - Assemble the received chunks into the final file
    """
    try:
        result = await coordinator.complete(
            session_id=req.session_id,
            uploaded_chunks=req.uploaded_chunks,
            file_name=req.file_name,
            file_size=req.file_size,
            user_id=user_id,
        )
    except UploadError:
        raise
    except Exception as e:
        logger.exception(f"Error completing upload: {str(e)}")
        raise InternalError("Failed to complete upload") from e
    return CompleteSessionResponse(
        file_name=result.file_name,
        original_name=result.original_name,
        file_path=result.file_path,
        file_size=result.file_size,
    )

@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_session(
    req: CleanupRequest,
    user_id: str = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    """
    POST /api/upload/cleanup - Drop a failed upload session
    """
    try:
        cleaned = await coordinator.cleanup(req.upload_id, user_id=user_id)
    except UploadError:
        raise
    except Exception as e:
        logger.exception(f"Error cleaning up upload: {str(e)}")
        raise InternalError("Failed to cleanup upload") from e
    return CleanupResponse(
        message="Upload session cleaned up" if cleaned else "No session found to clean up"
    )

@router.get("/status/{session_id}", response_model=SessionStatusResponse)
async def get_upload_status(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
):
    try:
        session = await coordinator.status(session_id, user_id=user_id)
    except UploadError:
        raise
    except Exception as e:
        logger.exception(f"Error getting upload status: {str(e)}")
        raise InternalError("Failed to get upload status") from e
    return SessionStatusResponse(
        session=SessionStatus(
            file_name=session.file_name,
            file_size=session.file_size,
            total_chunks=session.total_chunks,
            uploaded_chunks=session.uploaded_chunks,
            progress=session.progress,
            created_at=session.created_at,
        )
    )
