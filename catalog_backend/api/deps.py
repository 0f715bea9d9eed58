"""FastAPI dependencies: admin auth and pipeline collaborators."""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException

from catalog_backend.core.blob_store import BlobStore, S3BlobStore
from catalog_backend.core.config import settings
from catalog_backend.core.entity_store import EntityStore, GraphEntityStore
from catalog_backend.core.import_schema import ImportSchema
from catalog_backend.core.redis_client import RedisProgressStore
from catalog_backend.core.schema_loader import load_default_schema

logger = logging.getLogger(__name__)

_blob_store: Optional[BlobStore] = None


async def require_admin(x_admin_token: Optional[str] = Header(None)) -> str:
    """Reject the request unless X-Admin-Token matches the configured token.

    Returns "admin" as the actor name.
    Raises 503 if no token is configured, 401 if the header is missing or wrong.
    """
    if not settings.admin_api_token:
        logger.error("ADMIN_API_TOKEN is not set; rejecting admin request")
        raise HTTPException(status_code=503, detail="Admin access is not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, settings.admin_api_token):
        raise HTTPException(status_code=401, detail="Admin token required")
    return "admin"


def get_entity_store() -> EntityStore:
    return GraphEntityStore()


def get_blob_store() -> BlobStore:
    """One S3 client per process; boto3 clients are thread-safe."""
    global _blob_store
    if _blob_store is None:
        _blob_store = S3BlobStore()
    return _blob_store


def get_progress_store() -> RedisProgressStore:
    return RedisProgressStore()


def get_import_schema() -> ImportSchema:
    return load_default_schema()
