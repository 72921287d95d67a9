from upload_service.core.config import Settings
from .s3 import S3Storage
from .internal import InternalStorage
from .base import BaseStorage

def get_storage(settings: Settings) -> BaseStorage:
    if settings.STORAGE_BACKEND == "s3":
        return S3Storage(settings)
    elif settings.STORAGE_BACKEND == "local":
        return InternalStorage(settings)
    else:
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
