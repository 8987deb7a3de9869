# utils/s3.py
import logging
import secrets
import time

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from vibeshit.core.config import Settings

logger = logging.getLogger(__name__)


def make_storage_path(original_name: str, prefix: str = "projects") -> tuple[str, str]:
    """Return (filename, storage_path) for a new upload. Names are never reused."""
    extension = original_name.rsplit(".", 1)[-1].lower() if "." in original_name else "bin"
    filename = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}.{extension}"
    return filename, f"{prefix.strip('/')}/{filename}"


class S3Storage:
    def __init__(self, client, bucket: str, expires_in: int):
        self.client = client
        self.bucket = bucket
        self.expires_in = expires_in

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Storage":
        client = boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
        )
        return cls(client, settings.S3_BUCKET_NAME, settings.SIGNED_URL_EXPIRES_SECONDS)

    def upload_bytes(self, data: bytes, key: str, content_type: str) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return key

    def signed_url(self, key: str) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.expires_in,
        )

    def signed_urls(self, keys: list[str]) -> dict[str, str | None]:
        """Sign each key independently; a failing key maps to None."""
        result: dict[str, str | None] = {}
        for key in keys:
            if not isinstance(key, str) or not key:
                continue
            try:
                result[key] = self.signed_url(key)
            except (BotoCoreError, ClientError) as e:
                logger.warning(f"Could not sign {key}: {e}")
                result[key] = None
        return result

    def resolve(self, key: str | None) -> str | None:
        """Signed URL for a stored path, or the path itself when signing fails."""
        if not key:
            return None
        if key.startswith(("http://", "https://")):
            return key
        return self.signed_urls([key]).get(key) or key
