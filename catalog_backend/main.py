"""Catalog back office: FastAPI application entry point.

Initializes service connections on startup and registers API routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from catalog_backend.api import health, imports
from catalog_backend.core import catalog_ops, graph_client, redis_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize service connections on startup, close on shutdown."""
    logger.info("Starting catalog backend...")

    # NebulaGraph connection pool + catalog tags/edges
    try:
        graph_client.init_graph_pool()
        catalog_ops.ensure_catalog_schema()
    except Exception as e:
        logger.error(f"Failed to prepare NebulaGraph: {e}")

    try:
        redis_client.init_redis_client()
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")

    logger.info("Catalog backend ready")
    yield

    logger.info("Shutting down catalog backend...")
    graph_client.close_graph_pool()
    redis_client.close_redis_client()
    logger.info("Catalog backend stopped")


app = FastAPI(
    title="Catalog Import Service",
    version="0.1.0",
    description="Back-office bulk import of products, categories and product types.",
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(imports.router, prefix="/api", tags=["imports"])
