"""Name normalization, identity keys and id generation.

Provides:
- normalize_name: the matching key for categories, types and products
- slugify: URL identifier derived from a display name
- canonical_price: stable text form of a decimal price
- Vertex id builders: deterministic ids derived from normalized identity,
  so the entity store rejects a second vertex for the same identity
- generate_id: UUID v7 ids for runs, create tokens and blob keys
"""

import hashlib
import re
from decimal import Decimal

from uuid_extensions import uuid7

_SLUG_RE = re.compile(r"[^a-z0-9]+")

# Prefix + 32 hex chars keeps every id inside a FIXED_STRING(64) vid.
_VID_HASH_LEN = 32


def normalize_name(value) -> str:
    """Trim and lowercase a human-readable name. None becomes ''."""
    if value is None:
        return ""
    return str(value).strip().lower()


def slugify(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim dashes.

    "Hair Accessories & Bands" -> "hair-accessories-bands"
    """
    return _SLUG_RE.sub("-", normalize_name(value)).strip("-")


def canonical_price(price: Decimal) -> str:
    """Render a decimal price so that 500, 500.0 and 500.00 compare equal."""
    if price == 0:
        return "0"
    return format(price.normalize(), "f")


def _digest(*parts: str) -> str:
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:_VID_HASH_LEN]


def category_vid(normalized_name: str) -> str:
    return f"cat_{_digest('category', normalized_name)}"


def product_type_vid(normalized_name: str) -> str:
    return f"ptype_{_digest('product_type', normalized_name)}"


def product_vid(
    normalized_name: str,
    category_id: str,
    type_id: str,
    mrp_price: Decimal,
) -> str:
    """Build the product vid from its composite identity.

    Format: prd_ + sha256("product|{name}|{category_id}|{type_id}|{mrp}")
    """
    return f"prd_{_digest('product', normalized_name, category_id, type_id, canonical_price(mrp_price))}"


def generate_id(prefix: str = "") -> str:
    """Generate a UUID v7 string with optional prefix.

    Args:
        prefix: e.g. "ir_", "tok_"

    Returns:
        String like "ir_01926f4e8b7d7a8e9c0d1e2f3a4b5c6d" (no hyphens)
    """
    uid = uuid7().hex
    return f"{prefix}{uid}" if prefix else uid
