"""Unit tests for object storage."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from eventsync.configs.settings import Settings
from eventsync.ingestion.errors import StorageError
from eventsync.ingestion.storage import ObjectStorage, event_image_object_key


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def storage(s3_client):
    return ObjectStorage(s3_client, "bucket", "https://assets.blissbase.app/")


class TestObjectStorage:
    """Tests for ObjectStorage."""

    def test_object_key(self):
        """Should key renditions by slug and hash."""
        assert event_image_object_key("tanz-2025-07-04-1800", "c3d4") == "events/tanz-2025-07-04-1800/c3d4.webp"

    def test_upload_returns_public_url(self, storage, s3_client):
        """Should put a WebP object and return its public URL."""
        url = storage.upload_event_image(b"webp", "tanz-2025-07-04-1800", "c3d4")
        assert url == "https://assets.blissbase.app/events/tanz-2025-07-04-1800/c3d4.webp"
        s3_client.put_object.assert_called_once_with(
            Bucket="bucket",
            Key="events/tanz-2025-07-04-1800/c3d4.webp",
            Body=b"webp",
            ContentType="image/webp",
        )

    @pytest.mark.parametrize(
        "buffer,slug,phash",
        [(b"", "slug", "hash"), (b"x", " ", "hash"), (b"x", "slug", "")],
    )
    def test_rejects_empty_input(self, storage, s3_client, buffer, slug, phash):
        """Should refuse empty buffers, slugs and hashes."""
        with pytest.raises(StorageError):
            storage.upload_event_image(buffer, slug, phash)
        s3_client.put_object.assert_not_called()

    def test_client_errors_become_storage_errors(self, storage, s3_client):
        """Should wrap boto errors."""
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject"
        )
        with pytest.raises(StorageError):
            storage.upload_event_image(b"x", "slug", "hash")

    def test_from_settings_without_credentials(self):
        """Should return None when credentials are incomplete."""
        assert ObjectStorage.from_settings(Settings(S3_BUCKET_NAME="b")) is None

    def test_from_settings_targets_r2(self):
        """Should point the S3 client at the account's R2 endpoint."""
        settings = Settings(
            S3_ACCESS_KEY_ID="id",
            S3_SECRET_ACCESS_KEY="secret",
            S3_BUCKET_NAME="bucket",
            CLOUDFLARE_ACCOUNT_ID="acc123",
        )
        storage = ObjectStorage.from_settings(settings)
        assert storage.bucket == "bucket"
        assert storage.client.meta.endpoint_url == "https://acc123.r2.cloudflarestorage.com"
