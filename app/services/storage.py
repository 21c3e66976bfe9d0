import logging
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Content store read or write failed."""


class ContentStore(Protocol):
    def put_bytes(self, path: str, data: bytes, content_type: str = ...) -> None: ...

    def get_bytes(self, path: str) -> bytes: ...


def locked_pdf_key(organisation_id, family_id, document_id) -> str:
    # Deterministic per document so a retried issuance overwrites its own
    # object instead of leaving a second one behind.
    return f"{organisation_id}/{family_id}/{document_id}/locked.pdf"


def evidence_key(organisation_id, family_id, file_id, file_name: str) -> str:
    return f"{organisation_id}/{family_id}/evidence/{file_id}/{file_name}"


class StorageService:
    @staticmethod
    def is_configured() -> bool:
        return bool(
            settings.s3_endpoint_url
            and settings.s3_access_key
            and settings.s3_secret_key
        )

    @staticmethod
    def _get_client():  # type: ignore[return]
        if not StorageService.is_configured():
            raise StorageError(
                "S3 storage is not configured. "
                "Set S3_ENDPOINT_URL, S3_ACCESS_KEY, and S3_SECRET_KEY."
            )
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4"),
        )

    @staticmethod
    def put_bytes(
        path: str, data: bytes, content_type: str = "application/pdf"
    ) -> None:
        client = StorageService._get_client()
        try:
            client.put_object(
                Bucket=settings.s3_bucket_name,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload to %s failed: %s", path, e)
            raise StorageError(f"Upload failed: {e}") from e
        logger.info("Stored %d bytes at %s", len(data), path)

    @staticmethod
    def get_bytes(path: str) -> bytes:
        client = StorageService._get_client()
        try:
            response = client.get_object(Bucket=settings.s3_bucket_name, Key=path)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            logger.error("Download of %s failed: %s", path, e)
            raise StorageError(f"Download failed: {e}") from e

    @staticmethod
    def generate_upload_url(storage_key: str, mime_type: str) -> str:
        client = StorageService._get_client()
        url: str = client.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": settings.s3_bucket_name,
                "Key": storage_key,
                "ContentType": mime_type,
            },
            ExpiresIn=settings.s3_presigned_url_expiry,
        )
        return url

    @staticmethod
    def generate_download_url(storage_key: str) -> str:
        client = StorageService._get_client()
        url: str = client.generate_presigned_url(
            "get_object",
            Params={
                "Bucket": settings.s3_bucket_name,
                "Key": storage_key,
            },
            ExpiresIn=settings.s3_presigned_url_expiry,
        )
        return url


storage = StorageService()
