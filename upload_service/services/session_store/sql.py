"""
SQLAlchemy-backed session store.

Sessions survive a process restart, so chunks already on disk can still be
assembled afterwards. Timestamps are stored as naive UTC.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import BigInteger, DateTime, Integer, JSON, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from .base import SessionStore
from upload_service.core.exceptions import InternalError
from upload_service.models.session import UploadSession

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class UploadSessionRecord(Base):
    __tablename__ = "upload_sessions"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_chunks: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<UploadSessionRecord(session_id={self.session_id}, file_name={self.file_name})>"


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _to_session(record: UploadSessionRecord) -> UploadSession:
    return UploadSession(
        session_id=record.session_id,
        file_name=record.file_name,
        file_size=record.file_size,
        total_chunks=record.total_chunks,
        uploaded_chunks=list(record.uploaded_chunks or []),
        mime_type=record.mime_type,
        file_hash=record.file_hash,
        user_id=record.user_id,
        created_at=record.created_at.replace(tzinfo=timezone.utc),
    )


class SqlSessionStore(SessionStore):
    def __init__(self, database_url: str):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args)
        self._session_maker = sessionmaker(self.engine, expire_on_commit=False)
        self._lock = threading.Lock()
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Session store ready: {self.engine.url.render_as_string(hide_password=True)}")

    def save(self, session: UploadSession) -> None:
        record = UploadSessionRecord(
            session_id=session.session_id,
            file_name=session.file_name,
            file_size=session.file_size,
            total_chunks=session.total_chunks,
            uploaded_chunks=list(session.uploaded_chunks),
            mime_type=session.mime_type,
            file_hash=session.file_hash,
            user_id=session.user_id,
            created_at=_to_naive_utc(session.created_at),
        )
        with self._lock, self._transaction() as db:
            db.merge(record)

    def get(self, session_id: str) -> Optional[UploadSession]:
        with self._transaction() as db:
            record = db.get(UploadSessionRecord, session_id)
            return _to_session(record) if record else None

    def delete(self, session_id: str) -> bool:
        with self._lock, self._transaction() as db:
            record = db.get(UploadSessionRecord, session_id)
            if record is None:
                return False
            db.delete(record)
            return True

    def add_chunk(self, session_id: str, chunk_number: int) -> Optional[UploadSession]:
        with self._lock, self._transaction() as db:
            record = db.get(UploadSessionRecord, session_id)
            if record is None:
                return None
            session = _to_session(record)
            session.add_chunk(chunk_number)
            # reassign so the JSON column is flagged dirty
            record.uploaded_chunks = list(session.uploaded_chunks)
            return session

    def all(self) -> List[UploadSession]:
        with self._transaction() as db:
            records = db.scalars(select(UploadSessionRecord).order_by(UploadSessionRecord.created_at))
            return [_to_session(r) for r in records]

    def expired(self, before: datetime) -> List[UploadSession]:
        with self._transaction() as db:
            records = db.scalars(
                select(UploadSessionRecord).where(UploadSessionRecord.created_at < _to_naive_utc(before))
            )
            return [_to_session(r) for r in records]

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _transaction(self):
        db = self._session_maker()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Session store query failed: {str(e)}")
            raise InternalError("Session store unavailable") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
