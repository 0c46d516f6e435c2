"""
Object storage for cached event images.

Cloudflare R2 speaks the S3 API, so a plain boto3 S3 client pointed at the
account endpoint is used. Public URLs are served from the assets domain.
"""

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from eventsync.configs.settings import Settings
from eventsync.ingestion.errors import StorageError

logger = logging.getLogger(__name__)

WEBP_CONTENT_TYPE = "image/webp"


def event_image_object_key(event_slug: str, phash: str) -> str:
    return f"events/{event_slug}/{phash}.webp"


class ObjectStorage:
    """Uploads image renditions to an S3-compatible bucket."""

    def __init__(self, client: Any, bucket: str, public_base_url: str):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ObjectStorage"]:
        """
        Build storage from settings.

        Returns:
            ObjectStorage, or None when credentials are incomplete
        """
        secret = settings.S3_SECRET_ACCESS_KEY
        if not (
            settings.S3_ACCESS_KEY_ID
            and secret
            and settings.S3_BUCKET_NAME
            and settings.object_storage_endpoint
        ):
            logger.warning("Object storage credentials incomplete, image caching disabled")
            return None

        session = boto3.Session(
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=secret.get_secret_value(),
            region_name="auto",
        )
        client = session.client("s3", endpoint_url=settings.object_storage_endpoint)
        return cls(client, settings.S3_BUCKET_NAME, settings.ASSETS_PUBLIC_BASE_URL)

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{object_key}"

    def upload_event_image(self, buffer: bytes, event_slug: str, phash: str) -> str:
        """
        Upload a WebP rendition under ``events/<slug>/<phash>.webp``.

        Blocking; call through ``asyncio.to_thread`` from async code.

        Returns:
            The public URL of the uploaded object

        Raises:
            StorageError: on empty input or a failed upload
        """
        if not buffer:
            raise StorageError("Cannot upload empty buffer")
        if not event_slug or not event_slug.strip():
            raise StorageError("Event slug cannot be empty")
        if not phash or not phash.strip():
            raise StorageError("Phash cannot be empty")

        key = event_image_object_key(event_slug, phash)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=buffer,
                ContentType=WEBP_CONTENT_TYPE,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Error uploading image {key}: {e}") from e

        logger.info(f"Uploaded to R2 {key}")
        return self.public_url(key)
