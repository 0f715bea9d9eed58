"""Application configuration loaded from environment variables."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # NebulaGraph (entity store)
    nebula_graphd_host: str = "127.0.0.1"
    nebula_graphd_port: int = 9669
    nebula_user: str = "root"
    nebula_password: str = "nebula"
    nebula_space: str = "catalog"
    nebula_pool_size: int = 10

    # Redis (import progress)
    redis_host: str = "127.0.0.1"
    redis_port: int = 9379
    progress_ttl_seconds: int = 24 * 3600

    # Backend
    backend_host: str = "0.0.0.0"
    backend_port: int = 9200
    admin_api_token: Optional[str] = None

    # Blob store (S3-compatible)
    storage_endpoint_url: Optional[str] = None
    storage_region: Optional[str] = None
    storage_access_key_id: Optional[str] = None
    storage_secret_access_key: Optional[str] = None
    storage_bucket_name: str = "products"
    storage_public_base_url: Optional[str] = None

    # Image pipeline
    image_max_width: int = 1200
    image_max_height: int = 1200
    image_webp_quality: int = 82
    image_fetch_timeout_seconds: float = 15.0
    image_max_workers: int = 4
    image_user_agent: str = "Mozilla/5.0 (compatible; ImageBot/1.0)"

    # Paths (relative to project root)
    schemas_dir: str = "schemas"

    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent.parent

    @property
    def schemas_path(self) -> Path:
        path = Path(self.schemas_dir)
        return path if path.is_absolute() else self.project_root / path

    model_config = {"env_file": ".env", "env_prefix": "", "extra": "ignore"}


settings = Settings()
