"""Catalog Data Access Layer: nGQL wrappers for categories, types and products.

Uses graph_client.execute_query() which runs inside the catalog space.

VID format: FIXED_STRING(64). Vids are derived from normalized identity (see
keys.py), so a second vertex for the same category name, type name or product
composite key is impossible. Inserts use IF NOT EXISTS plus a per-call
create_token: reading back someone else's token means the insert lost a race.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from catalog_backend.core.graph_client import execute_query, execute_script
from catalog_backend.core.keys import (
    category_vid,
    generate_id,
    product_type_vid,
    product_vid,
)
from catalog_backend.core.models import (
    CategoryModel,
    CreateResult,
    ProductModel,
    ProductTypeModel,
)

logger = logging.getLogger(__name__)


CATALOG_SCHEMA_NGQL = [
    'CREATE TAG IF NOT EXISTS Category(name string, normalized_name string, slug string, '
    'description string NULL, create_token string, created_at datetime);',
    'CREATE TAG IF NOT EXISTS ProductType(name string, normalized_name string, slug string, '
    'category_id string NULL, create_token string, created_at datetime);',
    'CREATE TAG IF NOT EXISTS Product(name string, normalized_name string, category_id string, '
    'type_id string, mrp_price double, offer_price double NULL, product_title string, '
    'ribbon string, description string, status string, images string, options string, '
    'create_token string, created_at datetime);',
    'CREATE EDGE IF NOT EXISTS TYPE_OF();',
    'CREATE EDGE IF NOT EXISTS IN_CATEGORY();',
    'CREATE EDGE IF NOT EXISTS OF_TYPE();',
    'CREATE TAG INDEX IF NOT EXISTS category_name_index ON Category(normalized_name(128));',
    'CREATE TAG INDEX IF NOT EXISTS product_type_name_index ON ProductType(normalized_name(128));',
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _escape(value) -> str:
    """Escape a string value for nGQL insertion (single-quoted)."""
    if value is None:
        return "''"
    s = str(value)
    s = s.replace("\\", "\\\\")
    s = s.replace("'", "\\'")
    s = s.replace("\n", "\\n")
    s = s.replace("\r", "\\r")
    return f"'{s}'"


def _fmt_dt(dt: Optional[datetime]) -> str:
    if dt is None:
        return "NULL"
    return f'datetime("{dt.strftime("%Y-%m-%dT%H:%M:%S.%f")}")'


def _fmt_opt_str(value: Optional[str]) -> str:
    if value is None:
        return "NULL"
    return _escape(value)


def _fmt_opt_decimal(value: Optional[Decimal]) -> str:
    if value is None:
        return "NULL"
    return str(float(value))


def _opt_str(cell) -> Optional[str]:
    if cell.is_empty() or cell.is_null():
        return None
    return cell.as_string()


def _opt_decimal(cell) -> Optional[Decimal]:
    if cell.is_empty() or cell.is_null():
        return None
    return Decimal(str(cell.as_double()))


def ensure_catalog_schema() -> None:
    """Create catalog tags, edges and indexes if missing. Idempotent."""
    execute_script(CATALOG_SCHEMA_NGQL)
    logger.info("Catalog schema ensured")


def _fetch_token(tag: str, vid: str) -> Optional[str]:
    ngql = f'FETCH PROP ON {tag} {_escape(vid)} YIELD {tag}.create_token AS tok;'
    result = execute_query(ngql)
    if result.row_size() == 0:
        return None
    return _opt_str(result.row_values(0)[0])


def _insert_if_absent(tag: str, vid: str, columns: str, values: str, token: str) -> bool:
    """Insert a vertex unless its vid exists. True if this call created it."""
    ngql = (
        f'INSERT VERTEX IF NOT EXISTS {tag}({columns}) '
        f'VALUES {_escape(vid)}:({values});'
    )
    execute_query(ngql)
    return _fetch_token(tag, vid) == token


def _insert_edge(edge: str, src: str, dst: str) -> None:
    execute_query(f'INSERT EDGE IF NOT EXISTS {edge}() VALUES {_escape(src)}->{_escape(dst)}:();')


# ---------------------------------------------------------------------------
# Category operations
# ---------------------------------------------------------------------------

_CATEGORY_YIELD = (
    'YIELD id(vertex) AS vid, Category.name AS name, Category.normalized_name AS nname, '
    'Category.slug AS slug, Category.description AS descr'
)


def _parse_category_row(row) -> CategoryModel:
    return CategoryModel(
        id=row[0].as_string(),
        name=row[1].as_string(),
        normalized_name=row[2].as_string(),
        slug=row[3].as_string(),
        description=_opt_str(row[4]),
    )


def get_category(vid: str) -> Optional[CategoryModel]:
    result = execute_query(f'FETCH PROP ON Category {_escape(vid)} {_CATEGORY_YIELD};')
    if result.row_size() == 0:
        return None
    return _parse_category_row(result.row_values(0))


def find_category(normalized_name: str) -> Optional[CategoryModel]:
    return get_category(category_vid(normalized_name))


def insert_category(
    name: str,
    normalized_name: str,
    slug: str,
    description: Optional[str] = None,
) -> CreateResult:
    vid = category_vid(normalized_name)
    token = generate_id("tok_")
    now = datetime.now(timezone.utc)
    values = (
        f'{_escape(name)}, {_escape(normalized_name)}, {_escape(slug)}, '
        f'{_fmt_opt_str(description)}, {_escape(token)}, {_fmt_dt(now)}'
    )
    created = _insert_if_absent(
        "Category", vid,
        "name, normalized_name, slug, description, create_token, created_at",
        values, token,
    )
    if not created:
        return CreateResult.conflict(f"Category '{normalized_name}' already exists")
    return CreateResult.created(CategoryModel(
        id=vid, name=name, normalized_name=normalized_name, slug=slug,
        description=description, created_at=now,
    ))


def list_categories(limit: int = 200) -> list[CategoryModel]:
    ngql = f'LOOKUP ON Category {_CATEGORY_YIELD} | ORDER BY $-.name | LIMIT {limit};'
    result = execute_query(ngql)
    return [_parse_category_row(result.row_values(i)) for i in range(result.row_size())]


# ---------------------------------------------------------------------------
# ProductType operations
# ---------------------------------------------------------------------------

_TYPE_YIELD = (
    'YIELD id(vertex) AS vid, ProductType.name AS name, ProductType.normalized_name AS nname, '
    'ProductType.slug AS slug, ProductType.category_id AS cid'
)


def _parse_type_row(row) -> ProductTypeModel:
    return ProductTypeModel(
        id=row[0].as_string(),
        name=row[1].as_string(),
        normalized_name=row[2].as_string(),
        slug=row[3].as_string(),
        category_id=_opt_str(row[4]),
    )


def get_product_type(vid: str) -> Optional[ProductTypeModel]:
    result = execute_query(f'FETCH PROP ON ProductType {_escape(vid)} {_TYPE_YIELD};')
    if result.row_size() == 0:
        return None
    return _parse_type_row(result.row_values(0))


def find_product_type(normalized_name: str) -> Optional[ProductTypeModel]:
    return get_product_type(product_type_vid(normalized_name))


def insert_product_type(
    name: str,
    normalized_name: str,
    slug: str,
    category_id: Optional[str],
) -> CreateResult:
    vid = product_type_vid(normalized_name)
    token = generate_id("tok_")
    now = datetime.now(timezone.utc)
    values = (
        f'{_escape(name)}, {_escape(normalized_name)}, {_escape(slug)}, '
        f'{_fmt_opt_str(category_id)}, {_escape(token)}, {_fmt_dt(now)}'
    )
    created = _insert_if_absent(
        "ProductType", vid,
        "name, normalized_name, slug, category_id, create_token, created_at",
        values, token,
    )
    if not created:
        return CreateResult.conflict(f"Product type '{normalized_name}' already exists")
    if category_id:
        _insert_edge("TYPE_OF", vid, category_id)
    return CreateResult.created(ProductTypeModel(
        id=vid, name=name, normalized_name=normalized_name, slug=slug,
        category_id=category_id, created_at=now,
    ))


def list_product_types(limit: int = 200) -> list[ProductTypeModel]:
    ngql = f'LOOKUP ON ProductType {_TYPE_YIELD} | ORDER BY $-.name | LIMIT {limit};'
    result = execute_query(ngql)
    return [_parse_type_row(result.row_values(i)) for i in range(result.row_size())]


# ---------------------------------------------------------------------------
# Product operations
# ---------------------------------------------------------------------------

def product_exists(
    normalized_name: str,
    category_id: str,
    type_id: str,
    mrp_price: Decimal,
) -> bool:
    vid = product_vid(normalized_name, category_id, type_id, mrp_price)
    return _fetch_token("Product", vid) is not None


def insert_product(
    name: str,
    normalized_name: str,
    category_id: str,
    type_id: str,
    mrp_price: Decimal,
    offer_price: Optional[Decimal],
    product_title: str,
    ribbon: str,
    description: str,
    status: str,
    images: list[str],
) -> CreateResult:
    """Insert a Product vertex and its IN_CATEGORY / OF_TYPE edges."""
    vid = product_vid(normalized_name, category_id, type_id, mrp_price)
    token = generate_id("tok_")
    now = datetime.now(timezone.utc)
    values = (
        f'{_escape(name)}, {_escape(normalized_name)}, {_escape(category_id)}, '
        f'{_escape(type_id)}, {_fmt_opt_decimal(mrp_price)}, {_fmt_opt_decimal(offer_price)}, '
        f'{_escape(product_title)}, {_escape(ribbon)}, {_escape(description)}, '
        f'{_escape(status)}, {_escape(json.dumps(images))}, {_escape("[]")}, '
        f'{_escape(token)}, {_fmt_dt(now)}'
    )
    created = _insert_if_absent(
        "Product", vid,
        "name, normalized_name, category_id, type_id, mrp_price, offer_price, "
        "product_title, ribbon, description, status, images, options, create_token, created_at",
        values, token,
    )
    if not created:
        return CreateResult.conflict(
            "A product with this name, category, type, and MRP price already exists"
        )
    _insert_edge("IN_CATEGORY", vid, category_id)
    _insert_edge("OF_TYPE", vid, type_id)
    return CreateResult.created(ProductModel(
        id=vid,
        name=name,
        normalized_name=normalized_name,
        category_id=category_id,
        type_id=type_id,
        mrp_price=mrp_price,
        offer_price=offer_price,
        product_title=product_title,
        ribbon=ribbon,
        description=description,
        status=status,
        images=images,
        created_at=now,
    ))
