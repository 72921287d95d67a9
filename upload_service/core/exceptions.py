from typing import List, Optional
from fastapi import status


class UploadError(Exception):
    """Base error of the upload coordinator, rendered as a JSON error body."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, missing_chunks: Optional[List[int]] = None):
        super().__init__(message)
        self.message = message
        self.missing_chunks = missing_chunks


class InvalidRequest(UploadError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(UploadError):
    status_code = status.HTTP_404_NOT_FOUND


class InternalError(UploadError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def missing_chunks_error(missing: List[int]) -> InvalidRequest:
    return InvalidRequest(
        f"Missing chunks: {', '.join(str(n) for n in missing)}",
        missing_chunks=missing,
    )
