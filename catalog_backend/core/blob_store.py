"""Blob store for product images (S3-compatible, via boto3).

fetch_and_store downloads a remote image, re-encodes it and uploads it under
imported/. Works with AWS S3, MinIO, Backblaze B2 and any other provider that
speaks the S3 API.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlparse

import boto3
import requests
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
)

from catalog_backend.core.config import settings
from catalog_backend.core.errors import (
    ImageFetchError,
    StorageConnectionError,
    StorageUploadError,
)
from catalog_backend.core.image_optimizer import optimize_image
from catalog_backend.core.keys import generate_id

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"
IMPORT_PREFIX = "imported"


class BlobStore(ABC):
    @abstractmethod
    def fetch_and_store(self, url: str, bucket: str) -> str:
        """Persist the image at url and return its durable URL.

        Raises:
            ImageFetchError / StorageUploadError: this URL failed
            StorageConnectionError: the store itself is unavailable
        """

    def check_connection(self) -> bool:
        return True


def get_storage_client():
    """Build an S3 client from settings.

    Raises:
        StorageConnectionError: credentials missing or client creation failed
    """
    if not all([settings.storage_access_key_id, settings.storage_secret_access_key]):
        raise StorageConnectionError(
            "Storage configuration is incomplete. Please set STORAGE_ACCESS_KEY_ID "
            "and STORAGE_SECRET_ACCESS_KEY in your environment."
        )

    config = Config(
        signature_version="s3v4",
        retries={"max_attempts": 3, "mode": "standard"},
    )
    client_kwargs = {
        "service_name": "s3",
        "aws_access_key_id": settings.storage_access_key_id,
        "aws_secret_access_key": settings.storage_secret_access_key,
        "config": config,
    }
    if settings.storage_endpoint_url:
        client_kwargs["endpoint_url"] = settings.storage_endpoint_url
    if settings.storage_region:
        client_kwargs["region_name"] = settings.storage_region

    try:
        return boto3.client(**client_kwargs)
    except Exception as e:
        logger.error(f"Failed to create storage client: {e}")
        raise StorageConnectionError(f"Failed to connect to storage: {e}")


def public_url(bucket: str, key: str) -> str:
    base = settings.storage_public_base_url or settings.storage_endpoint_url
    if base:
        return f"{base.rstrip('/')}/{bucket}/{key}"
    return f"https://{bucket}.s3.amazonaws.com/{key}"


class S3BlobStore(BlobStore):
    def __init__(self, client=None, session: Optional[requests.Session] = None):
        self._client = client
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = settings.image_user_agent

    @property
    def client(self):
        if self._client is None:
            self._client = get_storage_client()
        return self._client

    def fetch_and_store(self, url: str, bucket: str) -> str:
        data, content_type = self._fetch(url)
        image = optimize_image(data, content_type)
        key = f"{IMPORT_PREFIX}/{generate_id()}.{image.extension}"

        try:
            self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=image.data,
                ContentType=image.content_type,
                CacheControl=CACHE_CONTROL,
            )
        except (EndpointConnectionError, NoCredentialsError) as e:
            raise StorageConnectionError(f"Storage unreachable: {e}")
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"Storage upload failed: {error_code} - {e}")
            raise StorageUploadError(f"Upload failed: {error_code}")
        except BotoCoreError as e:
            raise StorageUploadError(f"Upload failed: {e}")

        return public_url(bucket, key)

    def _fetch(self, url: str) -> tuple[bytes, str]:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ImageFetchError(f"Invalid image URL: {url}")

        try:
            resp = self._session.get(url, timeout=settings.image_fetch_timeout_seconds)
        except requests.RequestException as e:
            raise ImageFetchError(f"Failed to fetch image {url}: {e}")

        if not resp.ok:
            raise ImageFetchError(f"Failed to fetch image {url}: HTTP {resp.status_code}")

        content_type = resp.headers.get("Content-Type", "")
        if not content_type.lower().startswith("image/"):
            raise ImageFetchError(f"URL does not point to an image: {url} ({content_type or 'no content type'})")

        return resp.content, content_type

    def check_connection(self) -> bool:
        try:
            self.client.head_bucket(Bucket=settings.storage_bucket_name)
            return True
        except Exception:
            return False
