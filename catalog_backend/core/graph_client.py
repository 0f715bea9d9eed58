"""NebulaGraph connection pool and query helpers for the catalog space.

Provides a singleton connection pool initialized on app startup. Every query
runs in a pooled session that is switched to the configured catalog space.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from nebula3.Config import Config as NebulaConfig
from nebula3.data.ResultSet import ResultSet
from nebula3.gclient.net import ConnectionPool
from nebula3.gclient.net.Session import Session

from catalog_backend.core.config import settings

logger = logging.getLogger(__name__)

_pool: Optional[ConnectionPool] = None


def init_graph_pool() -> ConnectionPool:
    """Initialize the NebulaGraph connection pool. Call once at app startup."""
    global _pool
    config = NebulaConfig()
    config.max_connection_pool_size = settings.nebula_pool_size
    pool = ConnectionPool()
    ok = pool.init(
        [(settings.nebula_graphd_host, settings.nebula_graphd_port)],
        config,
    )
    if not ok:
        raise RuntimeError(
            f"Failed to connect to NebulaGraph at "
            f"{settings.nebula_graphd_host}:{settings.nebula_graphd_port}"
        )
    _pool = pool
    logger.info(f"NebulaGraph connection pool initialized (space={settings.nebula_space})")
    return _pool


def close_graph_pool() -> None:
    """Close the connection pool. Call at app shutdown."""
    global _pool
    if _pool:
        _pool.close()
        _pool = None
        logger.info("NebulaGraph connection pool closed")


def get_pool() -> ConnectionPool:
    if _pool is None:
        raise RuntimeError("NebulaGraph pool not initialized. Call init_graph_pool() first.")
    return _pool


@contextmanager
def session_scope(use_space: bool = True) -> Iterator[Session]:
    """Yield a pooled session, released on exit."""
    session = get_pool().get_session(settings.nebula_user, settings.nebula_password)
    try:
        if use_space:
            _checked(session.execute(f"USE {settings.nebula_space}"), f"USE {settings.nebula_space}")
        yield session
    finally:
        session.release()


def _checked(result: ResultSet, ngql: str) -> ResultSet:
    if not result.is_succeeded():
        raise RuntimeError(f"nGQL query failed: {result.error_msg()}\nQuery: {ngql}")
    return result


def execute_query(ngql: str) -> ResultSet:
    """Execute one nGQL statement in the catalog space."""
    with session_scope() as session:
        return _checked(session.execute(ngql), ngql)


def execute_script(statements: list[str], use_space: bool = True) -> None:
    """Execute statements in order on one session, stopping at the first failure."""
    with session_scope(use_space=use_space) as session:
        for ngql in statements:
            _checked(session.execute(ngql), ngql)


def check_connection() -> bool:
    """Check if NebulaGraph is reachable and the catalog space exists."""
    try:
        execute_query("SHOW TAGS")
        return True
    except Exception:
        return False
