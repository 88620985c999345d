# invoicehub/services/storage.py
from typing import Optional
from urllib.parse import urlparse
import uuid

import boto3
from botocore.config import Config
from invoicehub.config import settings
import structlog

logger = structlog.get_logger()

RECEIPT_PREFIX = "receipts"


class ReceiptStorage:
    """S3-compatible object storage for expense receipts."""

    def __init__(self):
        self.s3 = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY or None,
            config=Config(signature_version="s3v4"),
            region_name=settings.S3_REGION,
        )
        self.bucket = settings.S3_BUCKET_NAME

    def build_key(self, user_id: str, filename: str) -> str:
        safe_name = filename.replace("/", "_").strip() or "receipt"
        return f"{RECEIPT_PREFIX}/{user_id}/{uuid.uuid4()}-{safe_name}"

    def extract_key(self, reference: Optional[str]) -> Optional[str]:
        """
        Accept either a bare object key or a full URL to an object in this
        bucket and return the key. Returns None for anything else.
        """
        if not reference:
            return None
        reference = reference.strip()
        if not reference.startswith(("http://", "https://")):
            return reference.lstrip("/") or None

        path = urlparse(reference).path.lstrip("/")
        if path.startswith(f"{self.bucket}/"):
            path = path[len(self.bucket) + 1:]
        return path or None

    def get_presigned_upload_url(
        self, key: str, content_type: str, expires_in: int = 900
    ) -> str:
        return self.s3.generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in,
        )

    def get_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def delete(self, key: str):
        self.s3.delete_object(Bucket=self.bucket, Key=key)
        logger.info("receipt_deleted", key=key)


receipt_storage = ReceiptStorage()
