"""Redis client wrapper and import progress store.

Each import run's latest summary is kept as JSON under import_run:<run_id>
with a TTL, so a second request can poll while the import is running.
"""

import json
import logging
from typing import Optional

import redis as redis_lib

from catalog_backend.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis_lib.Redis] = None

PROGRESS_KEY_PREFIX = "import_run:"


def init_redis_client() -> redis_lib.Redis:
    """Initialize the Redis client."""
    global _client
    _client = redis_lib.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    logger.info("Redis client initialized")
    return _client


def get_redis_client() -> redis_lib.Redis:
    """Get the active Redis client."""
    if _client is None:
        raise RuntimeError("Redis client not initialized.")
    return _client


def close_redis_client() -> None:
    global _client
    if _client:
        _client.close()
        _client = None
        logger.info("Redis client closed")


def check_connection() -> bool:
    """Check if Redis is reachable."""
    try:
        if _client is None:
            return False
        return _client.ping()
    except Exception:
        return False


def progress_key(run_id: str) -> str:
    return f"{PROGRESS_KEY_PREFIX}{run_id}"


class RedisProgressStore:
    """Publishes and reads import run snapshots. Publishing never raises."""

    def __init__(self, client: Optional[redis_lib.Redis] = None, ttl_seconds: Optional[int] = None):
        self._client = client
        self.ttl_seconds = ttl_seconds or settings.progress_ttl_seconds

    @property
    def client(self) -> redis_lib.Redis:
        return self._client if self._client is not None else get_redis_client()

    def publish(self, run_id: str, payload: dict) -> None:
        try:
            self.client.set(progress_key(run_id), json.dumps(payload, default=str), ex=self.ttl_seconds)
        except (redis_lib.RedisError, RuntimeError) as e:
            logger.warning(f"Could not publish progress for {run_id}: {e}")

    def read(self, run_id: str) -> Optional[dict]:
        raw = self.client.get(progress_key(run_id))
        if raw is None:
            return None
        return json.loads(raw)
