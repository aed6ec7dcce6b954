import io
import os
import uuid
from typing import Dict, Optional
from urllib.parse import urlparse

import boto3
from botocore.exceptions import ClientError
from minio import Minio
from minio.error import S3Error

from app.core.config import settings
from app.core.exceptions import StorageError, ValidationError
from app.core.logging_config import logger


IMAGE_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "webp"}
VIDEO_EXTENSIONS = {"mp4", "avi", "mov", "wmv", "webm"}
DOCUMENT_EXTENSIONS = {"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt"}

UPLOAD_FOLDERS = {"image": "images", "video": "videos", "document": "documents"}


def file_extension(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


def validate_upload(filename: Optional[str], content_type: Optional[str], size: int, kind: Optional[str] = None) -> str:
    """
    Check extension, media kind and size of an upload.

    Returns the extension. Raises ValidationError.
    """
    if not filename:
        raise ValidationError("No file uploaded", field="file")

    extension = file_extension(filename)
    if extension not in settings.ALLOWED_EXTENSIONS:
        raise ValidationError("Invalid file type", field="file")

    allowed_for_kind = {
        "image": IMAGE_EXTENSIONS,
        "video": VIDEO_EXTENSIONS,
        "document": DOCUMENT_EXTENSIONS,
    }.get(kind)
    if allowed_for_kind is not None and extension not in allowed_for_kind:
        raise ValidationError("Invalid file type", field="file")

    if size > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File too large. Maximum size is {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB",
            field="file"
        )
    return extension


def build_object_key(user_id: str, kind: str, filename: str) -> str:
    """pitches/<user>/<images|videos|documents>/<uuid>.<ext>"""
    folder = UPLOAD_FOLDERS.get(kind, "documents")
    return f"pitches/{user_id}/{folder}/{uuid.uuid4().hex}.{file_extension(filename)}"


class StorageClient:
    """S3/MinIO storage for user media and pitch documents"""

    def __init__(self):
        self._client = None
        self.is_minio = not settings.USE_S3
        self.bucket_name = settings.S3_BUCKET_NAME

    @property
    def client(self):
        # created on first use so importing the app never opens a connection
        if self._client is None:
            if self.is_minio:
                endpoint = urlparse(settings.S3_ENDPOINT_URL)
                self._client = Minio(
                    endpoint.netloc or settings.S3_ENDPOINT_URL,
                    access_key=settings.AWS_ACCESS_KEY_ID,
                    secret_key=settings.AWS_SECRET_ACCESS_KEY,
                    secure=endpoint.scheme == "https"
                )
            else:
                self._client = boto3.client(
                    's3',
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
                    region_name=settings.AWS_REGION
                )
            self._ensure_bucket_exists()
        return self._client

    def _ensure_bucket_exists(self):
        try:
            if self.is_minio:
                if not self._client.bucket_exists(self.bucket_name):
                    self._client.make_bucket(self.bucket_name)
                    logger.info(f"Created MinIO bucket: {self.bucket_name}")
            else:
                self._client.head_bucket(Bucket=self.bucket_name)
        except (ClientError, S3Error) as e:
            logger.error(f"Error ensuring bucket exists: {e}")

    def get_public_url(self, key: str) -> str:
        if settings.S3_PUBLIC_URL:
            return f"{settings.S3_PUBLIC_URL.rstrip('/')}/{key}"
        if self.is_minio:
            return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"

    def upload_file(self, content: bytes, key: str, content_type: Optional[str] = None) -> Dict[str, str]:
        """
        Store bytes under `key`.

        Returns {"public_id": key, "url": public url}. Raises StorageError.
        """
        try:
            if self.is_minio:
                self.client.put_object(
                    self.bucket_name,
                    key,
                    io.BytesIO(content),
                    len(content),
                    content_type=content_type or "application/octet-stream"
                )
            else:
                extra_args = {}
                if content_type:
                    extra_args['ContentType'] = content_type
                self.client.upload_fileobj(io.BytesIO(content), self.bucket_name, key, ExtraArgs=extra_args)
        except (ClientError, S3Error) as e:
            logger.error(f"Error uploading {key}: {e}")
            raise StorageError("Failed to upload file", key=key)

        logger.info(f"Uploaded file: {key}")
        return {"public_id": key, "url": self.get_public_url(key)}

    def delete_file(self, key: str) -> bool:
        """False when the object could not be removed"""
        try:
            if self.is_minio:
                self.client.remove_object(self.bucket_name, key)
            else:
                self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, S3Error) as e:
            logger.error(f"Error deleting file {key}: {e}")
            return False

        logger.info(f"Deleted file: {key}")
        return True


storage_client = StorageClient()
