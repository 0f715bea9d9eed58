"""Shared test fixtures: in-memory entity store and blob store fakes."""

import csv
import io
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from catalog_backend.core.blob_store import BlobStore
from catalog_backend.core.entity_store import EntityStore
from catalog_backend.core.errors import ImageFetchError, StorageConnectionError
from catalog_backend.core.import_schema import default_product_schema
from catalog_backend.core.keys import (
    canonical_price,
    category_vid,
    normalize_name,
    product_type_vid,
    product_vid,
    slugify,
)
from catalog_backend.core.models import (
    CatalogKind,
    CategoryModel,
    CreateResult,
    ProductModel,
    ProductTypeModel,
)

HEADER = ["Name", "Category", "Type", "MRP Price", "Title", "Offer Price",
          "Ribbon", "Description", "Images", "Status"]


def make_csv(rows: list[list[str]], header: Optional[list[str]] = None) -> bytes:
    """Build CSV upload bytes; header defaults to the full product header."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(header if header is not None else HEADER)
    for row in rows:
        writer.writerow(row)
    return out.getvalue().encode("utf-8")


def product_row(
    name: str = "Silk Bangles",
    category: str = "Bangles",
    ptype: str = "Kada",
    mrp: str = "500",
    images: str = "",
    **extra: str,
) -> list[str]:
    """One row in HEADER order."""
    return [
        name, category, ptype, mrp,
        extra.get("title", ""), extra.get("offer_price", ""), extra.get("ribbon", ""),
        extra.get("description", ""), images, extra.get("status", ""),
    ]


def make_category(name: str = "Bangles") -> CategoryModel:
    n = normalize_name(name)
    return CategoryModel(id=category_vid(n), name=name, normalized_name=n, slug=slugify(name))


def make_product_type(name: str = "Kada", category_id: Optional[str] = None) -> ProductTypeModel:
    n = normalize_name(name)
    return ProductTypeModel(
        id=product_type_vid(n), name=name, normalized_name=n, slug=slugify(name),
        category_id=category_id,
    )


class FakeEntityStore(EntityStore):
    """Dict-backed store that records every call.

    fail_on: kind -> error message returned as CreateStatus.ERROR
    race_on: kinds where another writer creates the entity first (CONFLICT)
    """

    def __init__(self):
        self.categories: dict[str, CategoryModel] = {}
        self.types: dict[str, ProductTypeModel] = {}
        self.products: dict[str, ProductModel] = {}
        self.create_calls: list[tuple[CatalogKind, dict]] = []
        self.lookup_calls: list[tuple[CatalogKind, str]] = []
        self.probe_calls: list[tuple] = []
        self.fail_on: dict[CatalogKind, str] = {}
        self.race_on: set[CatalogKind] = set()
        self.lose_on_race: set[CatalogKind] = set()

    def creates_of(self, kind: CatalogKind) -> list[dict]:
        return [fields for k, fields in self.create_calls if k == kind]

    def add_category(self, name: str) -> CategoryModel:
        cat = make_category(name)
        self.categories[cat.normalized_name] = cat
        return cat

    def add_product_type(self, name: str, category: Optional[CategoryModel] = None) -> ProductTypeModel:
        ptype = make_product_type(name, category.id if category else None)
        self.types[ptype.normalized_name] = ptype
        return ptype

    def find_by_normalized_name(self, kind, normalized_name):
        self.lookup_calls.append((kind, normalized_name))
        if kind == CatalogKind.CATEGORY:
            return self.categories.get(normalized_name)
        if kind == CatalogKind.PRODUCT_TYPE:
            return self.types.get(normalized_name)
        raise ValueError(kind)

    def create(self, kind: CatalogKind, fields: dict[str, Any]) -> CreateResult:
        self.create_calls.append((kind, dict(fields)))
        if kind in self.fail_on:
            return CreateResult.failed(self.fail_on[kind])

        if kind == CatalogKind.CATEGORY:
            entity = make_category(fields["name"])
            entity = entity.model_copy(update={"description": fields.get("description")})
            table, key = self.categories, entity.normalized_name
        elif kind == CatalogKind.PRODUCT_TYPE:
            entity = make_product_type(fields["name"], fields.get("category_id"))
            table, key = self.types, entity.normalized_name
        else:
            n = normalize_name(fields["name"])
            key = product_vid(n, fields["category_id"], fields["type_id"], fields["mrp_price"])
            entity = ProductModel(
                id=key,
                name=fields["name"],
                normalized_name=n,
                category_id=fields["category_id"],
                type_id=fields["type_id"],
                mrp_price=fields["mrp_price"],
                offer_price=fields.get("offer_price"),
                product_title=fields["product_title"],
                ribbon=fields.get("ribbon", ""),
                description=fields.get("description", ""),
                status=fields.get("status", "active"),
                images=list(fields.get("images", [])),
                created_at=datetime.now(timezone.utc),
            )
            table = self.products

        if kind in self.race_on:
            # Another writer got there first; it may or may not be visible on refetch.
            if kind not in self.lose_on_race:
                table[key] = entity
            return CreateResult.conflict()
        if key in table:
            return CreateResult.conflict()
        table[key] = entity
        return CreateResult.created(entity)

    def exists_by_composite_key(self, normalized_name, category_id, type_id, mrp_price: Decimal) -> bool:
        self.probe_calls.append((normalized_name, category_id, type_id, canonical_price(mrp_price)))
        return product_vid(normalized_name, category_id, type_id, mrp_price) in self.products

    def list_categories(self):
        return sorted(self.categories.values(), key=lambda c: c.name)

    def list_product_types(self):
        return sorted(self.types.values(), key=lambda t: t.name)


class FakeBlobStore(BlobStore):
    """URLs containing 'unreachable' fail; outage=True fails everything."""

    def __init__(self, outage: bool = False):
        self.outage = outage
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def fetch_and_store(self, url: str, bucket: str) -> str:
        with self._lock:
            self.calls.append((url, bucket))
        if self.outage:
            raise StorageConnectionError("Storage unreachable")
        if "unreachable" in url:
            raise ImageFetchError(f"Failed to fetch image {url}: HTTP 404")
        name = url.rstrip("/").rsplit("/", 1)[-1].split(".")[0]
        return f"https://cdn.test/{bucket}/imported/{name}.webp"

    def check_connection(self) -> bool:
        return not self.outage


@pytest.fixture
def store() -> FakeEntityStore:
    return FakeEntityStore()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def schema():
    return default_product_schema()
