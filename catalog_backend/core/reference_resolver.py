"""Reference Data Resolver: find-or-create categories and product types.

Lookups go cache -> entity store -> create. A CONFLICT from create means
another writer got there first, so the entity is re-fetched by name. Whatever
entity is finally used goes into the run-scoped cache, so later rows naming
the same category or type never reach the store again.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from catalog_backend.core.entity_store import EntityStore
from catalog_backend.core.errors import RowDataError, StoreError
from catalog_backend.core.keys import normalize_name, slugify
from catalog_backend.core.models import (
    CatalogKind,
    CategoryModel,
    CreateStatus,
    ProductTypeModel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkipSignal:
    """The row cannot be completed but is not an error."""
    reason: str


@dataclass(frozen=True)
class ResolvedReferences:
    category: CategoryModel
    product_type: ProductTypeModel
    created_category: bool = False
    created_type: bool = False


class ReferenceCache:
    """Normalized name -> entity, for the lifetime of one import run."""

    def __init__(self):
        self._categories: dict[str, CategoryModel] = {}
        self._types: dict[str, ProductTypeModel] = {}

    def category(self, normalized_name: str) -> Optional[CategoryModel]:
        return self._categories.get(normalized_name)

    def product_type(self, normalized_name: str) -> Optional[ProductTypeModel]:
        return self._types.get(normalized_name)

    def put_category(self, entity: CategoryModel) -> None:
        self._categories[entity.normalized_name] = entity

    def put_product_type(self, entity: ProductTypeModel) -> None:
        self._types[entity.normalized_name] = entity

    def seed(self, store: EntityStore) -> None:
        """Preload known categories and types. Lookups still fall back to the store."""
        for cat in store.list_categories():
            self.put_category(cat)
        for ptype in store.list_product_types():
            self.put_product_type(ptype)
        logger.info(
            f"Reference cache seeded: {len(self._categories)} categories, "
            f"{len(self._types)} product types"
        )

    def __len__(self) -> int:
        return len(self._categories) + len(self._types)


class ReferenceResolver:
    def __init__(self, store: EntityStore, cache: Optional[ReferenceCache] = None):
        self.store = store
        self.cache = cache if cache is not None else ReferenceCache()

    def resolve(
        self, category_name: str, type_name: str
    ) -> Union[ResolvedReferences, SkipSignal]:
        """Resolve both references for one row.

        Raises RowDataError for a blank category and StoreError when the
        category can neither be found nor created. Type problems never raise;
        they come back as SkipSignal.
        """
        category, created_category = self.resolve_category(category_name)

        type_display = (type_name or "").strip()
        if not normalize_name(type_display):
            return SkipSignal("Product type is required")

        product_type, created_type = self.resolve_product_type(type_display, category)
        if product_type is None:
            return SkipSignal(f'Failed to create product type "{type_display}"')

        return ResolvedReferences(
            category=category,
            product_type=product_type,
            created_category=created_category,
            created_type=created_type,
        )

    def resolve_category(self, name: str) -> tuple[CategoryModel, bool]:
        display = (name or "").strip()
        normalized = normalize_name(display)
        if not normalized:
            raise RowDataError("Category name is required")

        cached = self.cache.category(normalized)
        if cached is not None:
            return cached, False

        found = self.store.find_by_normalized_name(CatalogKind.CATEGORY, normalized)
        if found is not None:
            self.cache.put_category(found)
            return found, False

        result = self.store.create(CatalogKind.CATEGORY, {
            "name": display,
            "slug": slugify(display),
            "description": f"Collection of {display}",
        })
        if result.status == CreateStatus.CREATED:
            self.cache.put_category(result.entity)
            logger.info(f"Created category '{display}' ({result.entity.id})")
            return result.entity, True

        if result.status == CreateStatus.CONFLICT:
            found = self.store.find_by_normalized_name(CatalogKind.CATEGORY, normalized)
            if found is not None:
                self.cache.put_category(found)
                return found, False
            raise StoreError(f'Failed to create category "{display}"')

        raise StoreError(f'Failed to create category "{display}": {result.error}')

    def resolve_product_type(
        self, name: str, category: CategoryModel
    ) -> tuple[Optional[ProductTypeModel], bool]:
        """Find or create a type under category. (None, False) when unobtainable."""
        display = name.strip()
        normalized = normalize_name(display)

        cached = self.cache.product_type(normalized)
        if cached is not None:
            return cached, False

        found = self.store.find_by_normalized_name(CatalogKind.PRODUCT_TYPE, normalized)
        if found is not None:
            self.cache.put_product_type(found)
            return found, False

        result = self.store.create(CatalogKind.PRODUCT_TYPE, {
            "name": display,
            "slug": slugify(display),
            "category_id": category.id,
        })
        if result.status == CreateStatus.CREATED:
            self.cache.put_product_type(result.entity)
            logger.info(f"Created product type '{display}' in '{category.name}'")
            return result.entity, True

        if result.status == CreateStatus.CONFLICT:
            found = self.store.find_by_normalized_name(CatalogKind.PRODUCT_TYPE, normalized)
            if found is not None:
                self.cache.put_product_type(found)
                return found, False

        logger.warning(f"Could not create product type '{display}': {result.error}")
        return None, False
