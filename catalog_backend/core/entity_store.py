"""Entity store interface and its NebulaGraph implementation.

The import pipeline only talks to EntityStore. GraphEntityStore maps the
three calls onto catalog_ops; tests use an in-memory store instead.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

from catalog_backend.core import catalog_ops
from catalog_backend.core.keys import normalize_name, slugify
from catalog_backend.core.models import (
    CatalogEntity,
    CatalogKind,
    CategoryModel,
    CreateResult,
    ProductTypeModel,
)

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """CRUD surface the import pipeline needs from catalog storage."""

    @abstractmethod
    def find_by_normalized_name(
        self, kind: CatalogKind, normalized_name: str
    ) -> Optional[CatalogEntity]:
        ...

    @abstractmethod
    def create(self, kind: CatalogKind, fields: dict[str, Any]) -> CreateResult:
        """Create one entity. Conflicts come back as CreateResult, not exceptions."""

    @abstractmethod
    def exists_by_composite_key(
        self,
        normalized_name: str,
        category_id: str,
        type_id: str,
        mrp_price: Decimal,
    ) -> bool:
        ...

    def list_categories(self) -> list[CategoryModel]:
        return []

    def list_product_types(self) -> list[ProductTypeModel]:
        return []


class GraphEntityStore(EntityStore):
    """EntityStore backed by the NebulaGraph catalog space."""

    def find_by_normalized_name(
        self, kind: CatalogKind, normalized_name: str
    ) -> Optional[CatalogEntity]:
        if kind == CatalogKind.CATEGORY:
            return catalog_ops.find_category(normalized_name)
        if kind == CatalogKind.PRODUCT_TYPE:
            return catalog_ops.find_product_type(normalized_name)
        raise ValueError(f"Lookup by name is not supported for {kind.value}")

    def create(self, kind: CatalogKind, fields: dict[str, Any]) -> CreateResult:
        name = str(fields["name"]).strip()
        normalized = normalize_name(name)
        try:
            if kind == CatalogKind.CATEGORY:
                return catalog_ops.insert_category(
                    name=name,
                    normalized_name=normalized,
                    slug=fields.get("slug") or slugify(name),
                    description=fields.get("description"),
                )
            if kind == CatalogKind.PRODUCT_TYPE:
                return catalog_ops.insert_product_type(
                    name=name,
                    normalized_name=normalized,
                    slug=fields.get("slug") or slugify(name),
                    category_id=fields.get("category_id"),
                )
            return catalog_ops.insert_product(
                name=name,
                normalized_name=normalized,
                category_id=fields["category_id"],
                type_id=fields["type_id"],
                mrp_price=fields["mrp_price"],
                offer_price=fields.get("offer_price"),
                product_title=fields["product_title"],
                ribbon=fields.get("ribbon", ""),
                description=fields.get("description", ""),
                status=fields.get("status", "active"),
                images=list(fields.get("images", [])),
            )
        except Exception as e:
            logger.error(f"Create {kind.value} '{name}' failed: {e}")
            return CreateResult.failed(str(e))

    def exists_by_composite_key(
        self,
        normalized_name: str,
        category_id: str,
        type_id: str,
        mrp_price: Decimal,
    ) -> bool:
        return catalog_ops.product_exists(normalized_name, category_id, type_id, mrp_price)

    def list_categories(self) -> list[CategoryModel]:
        return catalog_ops.list_categories()

    def list_product_types(self) -> list[ProductTypeModel]:
        return catalog_ops.list_product_types()
