import os
import logging
import boto3
from typing import Optional
from .internal import InternalStorage
from upload_service.core.config import Settings
from upload_service.core.exceptions import InternalError
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

class S3Storage(InternalStorage):
    """Chunks are staged on local disk; the assembled file is pushed to S3."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.bucket_name = settings.S3_BUCKET_NAME
        self.endpoint_url = settings.S3_ENDPOINT_URL
        self.s3_client = boto3.client(
            's3',
            aws_access_key_id=settings.S3_ACCESS_KEY or None,
            aws_secret_access_key=settings.S3_SECRET_KEY or None,
            endpoint_url=settings.S3_ENDPOINT_URL or None,
            region_name=settings.S3_REGION_NAME
        )

    def object_key(self, file_name: str, user_id: Optional[str]) -> str:
        return f"{user_id}/{file_name}" if user_id else file_name

    async def publish(self, file_path: str, file_name: str, user_id: Optional[str] = None) -> str:
        s3_key = self.object_key(file_name, user_id)
        await self._run(self._upload_to_s3, file_path, s3_key)
        await self.delete_file(file_path)
        if not self.endpoint_url:
            return f"s3://{self.bucket_name}/{s3_key}"
        return f"{self.endpoint_url}/{self.bucket_name}/{s3_key}"

    def _upload_to_s3(self, file_path: str, s3_key: str) -> None:
        try:
            self.s3_client.upload_file(file_path, self.bucket_name, s3_key)
            logger.info(f"Uploaded {os.path.basename(file_path)} to s3://{self.bucket_name}/{s3_key}")
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            logger.error(f"S3 upload failed for {s3_key}: {e}")
            raise InternalError("S3 upload failed") from e
