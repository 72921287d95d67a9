from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    JWT_SECRET_KEY: str = "test_secret_key_change_in_production"
    JWT_ALGORITHM: str = "HS256"
    EXPECTED_JWT_ISSUER: Optional[str] = None
    EXPECTED_JWT_AUDIENCE: Optional[str] = None

    # Scratch directory for chunks and the staging file used during assembly
    LOCAL_TEMP_CHUNK_PATH: str = "uploads/chunks"

    # Where assembled files end up when STORAGE_BACKEND is 'local'
    COMPLETED_UPLOAD_PATH: str = "uploads/books"

    STORAGE_BACKEND: str = "local"  # 's3' or 'local'

    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_BUCKET_NAME: str = "upload-service"
    S3_ENDPOINT_URL: str = ""
    S3_REGION_NAME: Optional[str] = None

    SESSION_STORE: str = "sql"  # 'sql' or 'memory'
    DATABASE_URL: str = "sqlite:///./upload_sessions.db"
    SESSION_TTL_SECONDS: int = 24 * 60 * 60
    SESSION_SWEEP_INTERVAL_SECONDS: int = 600

    MAX_FILE_SIZE: int = 2 * 1024 * 1024 * 1024
    MAX_TOTAL_CHUNKS: int = 10000
    MAX_CHUNK_SIZE: int = 10 * 1024 * 1024

    CORS_ORIGINS: List[str] = ["*"]
    SERVICE_PORT: int = 8000

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
