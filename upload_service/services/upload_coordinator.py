"""
Chunked upload coordinator.

A session moves Initialized -> Receiving -> Completed, or ends early through
cleanup or TTL expiry. Every terminal transition deletes the session record
and its scratch directory. A failed completion leaves both in place so the
client can resend the missing pieces and try again.
"""
import asyncio
import logging
import re
import time
from datetime import datetime, timedelta
from typing import BinaryIO, Iterable, Optional
from uuid import uuid4

from upload_service.core.config import Settings
from upload_service.core.exceptions import InvalidRequest, NotFound, missing_chunks_error
from upload_service.models.session import AssemblyResult, UploadSession, utcnow
from upload_service.services.session_store.base import SessionStore
from upload_service.services.storage.base import BaseStorage

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
FILE_HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")
HASH_ALGORITHM = "sha256"


def destination_name(file_name: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9.-]", "_", file_name)
    return f"{int(time.time() * 1000)}_{uuid4().hex[:8]}_{sanitized}"


class UploadCoordinator:
    def __init__(self, store: SessionStore, storage: BaseStorage, settings: Settings):
        self.store = store
        self.storage = storage
        self.settings = settings

    async def _store(self, method, *args):
        return await asyncio.to_thread(method, *args)

    async def _get_session(self, session_id: str, user_id: Optional[str]) -> UploadSession:
        session = await self._store(self.store.get, session_id)
        if session is None or not session.owned_by(user_id):
            raise NotFound("Upload session not found")
        return session

    async def initialize(
        self,
        file_name: Optional[str],
        file_size: Optional[int],
        total_chunks: Optional[int],
        session_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        file_hash: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> UploadSession:
        if not file_name or not file_size or not total_chunks:
            raise InvalidRequest("Missing required fields: fileName, fileSize, totalChunks")
        if file_size < 0 or total_chunks < 0:
            raise InvalidRequest("fileSize and totalChunks must be positive")
        if file_size > self.settings.MAX_FILE_SIZE:
            raise InvalidRequest(f"File too large: limit is {self.settings.MAX_FILE_SIZE} bytes")
        if total_chunks > self.settings.MAX_TOTAL_CHUNKS:
            raise InvalidRequest(f"Too many chunks: limit is {self.settings.MAX_TOTAL_CHUNKS}")
        if file_hash is not None:
            file_hash = file_hash.lower()
            if not FILE_HASH_PATTERN.match(file_hash):
                raise InvalidRequest("fileHash must be a hex encoded SHA-256 digest")

        if session_id:
            if not SESSION_ID_PATTERN.match(session_id):
                raise InvalidRequest("Invalid uploadId")
            existing = await self._store(self.store.get, session_id)
            if existing is not None and not existing.owned_by(user_id):
                raise InvalidRequest("Upload session already exists")
            # stale chunks from an earlier attempt under the same id are discarded
            reset = True
        else:
            session_id = str(uuid4())
            reset = False

        await self.storage.prepare_session(session_id, reset=reset)
        session = UploadSession(
            session_id=session_id,
            file_name=file_name,
            file_size=file_size,
            total_chunks=total_chunks,
            mime_type=mime_type,
            file_hash=file_hash,
            user_id=user_id,
        )
        await self._store(self.store.save, session)

        logger.info(f"Upload session initialized: {session_id} for file {file_name}")
        return session

    async def receive_chunk(
        self,
        session_id: Optional[str],
        chunk_number: Optional[int],
        stream: Optional[BinaryIO],
        user_id: Optional[str] = None,
    ) -> int:
        if stream is None or chunk_number is None or not session_id:
            raise InvalidRequest("Missing required fields: chunk, chunkNumber, sessionId")

        session = await self._get_session(session_id, user_id)
        if chunk_number < 1 or chunk_number > session.total_chunks:
            raise InvalidRequest("Invalid chunk number")

        written = await self.storage.save_chunk(session_id, chunk_number, stream)
        updated = await self._store(self.store.add_chunk, session_id, chunk_number)
        if updated is None:
            # the session was completed or cleaned up while this chunk was in flight
            await self.storage.cleanup_session(session_id)
            raise NotFound("Upload session not found")

        logger.info(f"Chunk {chunk_number}/{session.total_chunks} uploaded for session {session_id} ({written} bytes)")
        return chunk_number

    async def complete(
        self,
        session_id: Optional[str],
        uploaded_chunks: Optional[Iterable[int]],
        file_name: Optional[str],
        file_size: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> AssemblyResult:
        if not session_id or uploaded_chunks is None or not file_name:
            raise InvalidRequest("Missing required fields: sessionId, uploadedChunks, fileName")

        session = await self._get_session(session_id, user_id)

        claimed = set(uploaded_chunks)
        received = set(session.uploaded_chunks)
        missing = [
            n for n in range(1, session.total_chunks + 1)
            if n not in claimed or n not in received
        ]
        if missing:
            raise missing_chunks_error(missing)

        declared_size = file_size if file_size is not None else session.file_size
        final_name = destination_name(file_name)
        assembled = await self.storage.assemble(
            session_id,
            session.total_chunks,
            HASH_ALGORITHM if session.file_hash else None,
        )

        if assembled.size != declared_size:
            await self.storage.delete_file(assembled.path)
            logger.warning(
                f"Size mismatch for session {session_id}: expected {declared_size}, assembled {assembled.size}"
            )
            raise InvalidRequest("File size mismatch after assembly")

        if session.file_hash and assembled.digest != session.file_hash:
            await self.storage.delete_file(assembled.path)
            logger.warning(f"Checksum mismatch for session {session_id}")
            raise InvalidRequest("File checksum mismatch after assembly")

        try:
            location = await self.storage.publish(assembled.path, final_name, session.user_id)
        except Exception:
            await self.storage.delete_file(assembled.path)
            raise

        await self.storage.cleanup_session(session_id)
        await self._store(self.store.delete, session_id)

        logger.info(f"File assembled successfully: {final_name} ({assembled.size} bytes)")
        return AssemblyResult(
            file_name=final_name,
            original_name=file_name,
            file_path=location,
            file_size=assembled.size,
        )

    async def cleanup(self, token: Optional[str], user_id: Optional[str] = None) -> bool:
        """Drop the first session whose id or file name contains ``token``.

        Returns False when nothing matched; an unknown token is not an error.
        """
        if not token:
            raise InvalidRequest("Missing uploadId")

        sessions = await self._store(self.store.all)
        for session in sessions:
            if not session.owned_by(user_id):
                continue
            if token in session.session_id or token in session.file_name:
                await self.storage.cleanup_session(session.session_id)
                await self._store(self.store.delete, session.session_id)
                logger.info(f"Upload session cleaned up: {session.session_id}")
                return True

        logger.info(f"No upload session to clean up for: {token}")
        return False

    async def status(self, session_id: str, user_id: Optional[str] = None) -> UploadSession:
        return await self._get_session(session_id, user_id)

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        ttl = self.settings.SESSION_TTL_SECONDS
        if ttl <= 0:
            return 0

        cutoff = (now or utcnow()) - timedelta(seconds=ttl)
        removed = 0
        for session in await self._store(self.store.expired, cutoff):
            await self.storage.cleanup_session(session.session_id)
            if await self._store(self.store.delete, session.session_id):
                removed += 1

        if removed:
            logger.info(f"Expired {removed} upload session(s) older than {ttl}s")
        return removed
