import asyncio
import io
import jwt
import pytest
from faker import Faker
from fastapi.testclient import TestClient
from upload_service.core.config import Settings
from upload_service.main import create_app
from upload_service.services.session_store.memory import MemorySessionStore
from upload_service.services.storage.internal import InternalStorage
from upload_service.services.upload_coordinator import UploadCoordinator

fake = Faker()

JWT_SECRET = "unit-test-secret"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENV="test",
        JWT_SECRET_KEY=JWT_SECRET,
        LOCAL_TEMP_CHUNK_PATH=str(tmp_path / "chunks"),
        COMPLETED_UPLOAD_PATH=str(tmp_path / "books"),
        SESSION_STORE="memory",
        DATABASE_URL=f"sqlite:///{tmp_path / 'sessions.db'}",
        SESSION_SWEEP_INTERVAL_SECONDS=0,
    )


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def storage(settings: Settings) -> InternalStorage:
    return InternalStorage(settings)


@pytest.fixture
def coordinator(store, storage, settings) -> UploadCoordinator:
    return UploadCoordinator(store=store, storage=storage, settings=settings)


@pytest.fixture
def user_id() -> str:
    return str(fake.uuid4())


def make_token(claims: dict, secret: str = JWT_SECRET) -> str:
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token({'sub': user_id})}"}


@pytest.fixture
def client(settings, store, storage):
    app = create_app(settings, store=store, storage=storage)
    with TestClient(app) as test_client:
        yield test_client


def run(coro):
    return asyncio.run(coro)


def upload(coordinator: UploadCoordinator, session_id: str, chunk_number: int, data: bytes, user_id=None) -> int:
    return run(coordinator.receive_chunk(session_id, chunk_number, io.BytesIO(data), user_id=user_id))
