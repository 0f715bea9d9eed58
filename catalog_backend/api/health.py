"""Health check endpoint: verifies backend + all service connections."""

from fastapi import APIRouter, Depends

from catalog_backend.api.deps import get_blob_store
from catalog_backend.core import graph_client, redis_client
from catalog_backend.core.blob_store import BlobStore

router = APIRouter()


@router.get("/health")
async def health_check(blob_store: BlobStore = Depends(get_blob_store)):
    """Check backend status and connectivity to the entity store, Redis and blob store."""
    nebula_ok = graph_client.check_connection()
    redis_ok = redis_client.check_connection()
    storage_ok = blob_store.check_connection()

    all_ok = nebula_ok and redis_ok and storage_ok

    return {
        "status": "ok" if all_ok else "degraded",
        "services": {
            "nebula": "ok" if nebula_ok else "error",
            "redis": "ok" if redis_ok else "error",
            "storage": "ok" if storage_ok else "error",
        }
    }
