import os
import shutil
import asyncio
import hashlib
import logging
import concurrent.futures
from typing import BinaryIO, Optional
from .base import BaseStorage, AssembledFile
from upload_service.core.config import Settings
from upload_service.core.exceptions import InvalidRequest, NotFound

logger = logging.getLogger(__name__)

# blocking disk I/O runs here, off the event loop
thread_pool = concurrent.futures.ThreadPoolExecutor(max_workers=4)

COPY_BUFFER_SIZE = 1024 * 1024
ASSEMBLED_FILE_NAME = "assembled"


def chunk_file_name(chunk_number: int) -> str:
    return f"chunk_{chunk_number:04d}"


class InternalStorage(BaseStorage):
    """Keeps chunks and assembled files on the local disk."""

    def __init__(self, settings: Settings):
        self.chunk_root = settings.LOCAL_TEMP_CHUNK_PATH
        self.completed_root = settings.COMPLETED_UPLOAD_PATH
        self.max_chunk_size = settings.MAX_CHUNK_SIZE

    def session_dir(self, upload_session_id: str) -> str:
        return os.path.join(self.chunk_root, upload_session_id)

    def chunk_path(self, upload_session_id: str, chunk_number: int) -> str:
        return os.path.join(self.session_dir(upload_session_id), chunk_file_name(chunk_number))

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(thread_pool, func, *args)

    def _prepare_session_sync(self, upload_session_id: str, reset: bool) -> str:
        base_path = self.session_dir(upload_session_id)
        if reset and os.path.isdir(base_path):
            shutil.rmtree(base_path)
        os.makedirs(base_path, exist_ok=True)
        return base_path

    async def prepare_session(self, upload_session_id: str, reset: bool = False) -> str:
        return await self._run(self._prepare_session_sync, upload_session_id, reset)

    def _save_chunk_sync(self, upload_session_id: str, chunk_number: int, stream: BinaryIO) -> int:
        base_path = self.session_dir(upload_session_id)
        os.makedirs(base_path, exist_ok=True)
        chunk_path = self.chunk_path(upload_session_id, chunk_number)
        # an earlier copy of this chunk stays intact until the new one is complete
        part_path = f"{chunk_path}.part"
        written = 0

        try:
            with open(part_path, "wb") as f:
                while True:
                    block = stream.read(COPY_BUFFER_SIZE)
                    if not block:
                        break
                    written += len(block)
                    if written > self.max_chunk_size:
                        raise InvalidRequest("File too large")
                    f.write(block)
            os.replace(part_path, chunk_path)
        except Exception:
            if os.path.exists(part_path):
                os.remove(part_path)
            raise

        logger.debug(f"Chunk saved: {chunk_path} ({written} bytes)")
        return written

    async def save_chunk(self, upload_session_id: str, chunk_number: int, stream: BinaryIO) -> int:
        """Stream one chunk into the session's scratch directory, replacing any earlier copy."""
        return await self._run(self._save_chunk_sync, upload_session_id, chunk_number, stream)

    def _assemble_sync(self, upload_session_id: str, total_chunks: int,
                       hash_algorithm: Optional[str]) -> AssembledFile:
        merged_file_path = os.path.join(self.session_dir(upload_session_id), ASSEMBLED_FILE_NAME)
        hasher = hashlib.new(hash_algorithm) if hash_algorithm else None
        total_size = 0

        logger.info(f"Starting merge of {total_chunks} chunks for session {upload_session_id}")
        try:
            with open(merged_file_path, "wb") as merged:
                for chunk_number in range(1, total_chunks + 1):
                    chunk_path = self.chunk_path(upload_session_id, chunk_number)
                    if not os.path.exists(chunk_path):
                        raise NotFound(f"Chunk {chunk_number} file not found")

                    with open(chunk_path, "rb") as chunk_file:
                        while True:
                            block = chunk_file.read(COPY_BUFFER_SIZE)
                            if not block:
                                break
                            merged.write(block)
                            if hasher:
                                hasher.update(block)
                            total_size += len(block)
        except Exception:
            # drop the incomplete output file
            if os.path.exists(merged_file_path):
                os.remove(merged_file_path)
                logger.info(f"Removed incomplete output file: {merged_file_path}")
            raise

        logger.info(
            f"Merge completed: {total_chunks} chunks, "
            f"{total_size/1024/1024:.2f}MB -> {merged_file_path}"
        )
        return AssembledFile(
            path=merged_file_path,
            size=total_size,
            digest=hasher.hexdigest() if hasher else None,
        )

    async def assemble(self, upload_session_id: str, total_chunks: int,
                       hash_algorithm: Optional[str] = None) -> AssembledFile:
        """Concatenate chunks 1..total_chunks into a staging file inside the session's directory."""
        return await self._run(self._assemble_sync, upload_session_id, total_chunks, hash_algorithm)

    def _move_sync(self, file_path: str, final_path: str) -> str:
        os.makedirs(os.path.dirname(final_path), exist_ok=True)
        shutil.move(file_path, final_path)
        return os.path.abspath(final_path)

    async def publish(self, file_path: str, file_name: str, user_id: Optional[str] = None) -> str:
        final_path = os.path.join(self.completed_root, file_name)
        return await self._run(self._move_sync, file_path, final_path)

    def _delete_file(self, file_path: str) -> None:
        if os.path.exists(file_path):
            os.remove(file_path)

    async def delete_file(self, file_path: str) -> None:
        await self._run(self._delete_file, file_path)

    def _cleanup_session_sync(self, upload_session_id: str) -> dict:
        base_path = self.session_dir(upload_session_id)
        if not os.path.exists(base_path):
            return {"files_removed": 0, "total_size": 0}

        files = os.listdir(base_path)
        total_size = sum(os.path.getsize(os.path.join(base_path, f)) for f in files)
        shutil.rmtree(base_path, ignore_errors=True)
        logger.info(
            f"Cleaned up chunk directory {base_path}: "
            f"{len(files)} files, {total_size/1024/1024:.2f}MB"
        )
        return {"files_removed": len(files), "total_size": total_size}

    async def cleanup_session(self, upload_session_id: str) -> dict:
        """Remove the session's scratch directory, if any."""
        return await self._run(self._cleanup_session_sync, upload_session_id)
