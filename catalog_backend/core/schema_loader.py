"""Import Schema Loader: loads and validates YAML column schemas."""

import logging

import yaml

from catalog_backend.core.config import settings
from catalog_backend.core.import_schema import ImportSchema, default_product_schema

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_NAME = "products"


def load_schema(schema_name: str) -> ImportSchema:
    """Load an import schema from the schemas directory.

    Looks for {schemas_dir}/{schema_name}.yaml
    """
    schema_path = settings.schemas_path / f"{schema_name}.yaml"

    if not schema_path.exists():
        raise FileNotFoundError(f"Import schema not found: {schema_path}")

    with open(schema_path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Invalid schema format in {schema_path}: expected a YAML mapping")

    schema = ImportSchema(**data)
    keys = [c.key for c in schema.columns]
    if len(keys) != len(set(keys)):
        raise ValueError(f"Duplicate column keys in {schema_path}")
    return schema


def load_default_schema() -> ImportSchema:
    """Load schemas/products.yaml, falling back to the built-in schema."""
    try:
        return load_schema(DEFAULT_SCHEMA_NAME)
    except FileNotFoundError:
        logger.warning(f"No {DEFAULT_SCHEMA_NAME}.yaml in {settings.schemas_path}, using built-in schema")
        return default_product_schema()


def list_schemas() -> list[str]:
    """List available schema names (without .yaml extension)."""
    schemas_dir = settings.schemas_path
    if not schemas_dir.exists():
        return []
    return sorted(p.stem for p in schemas_dir.glob("*.yaml") if not p.stem.startswith("_"))
