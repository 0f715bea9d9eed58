"""Import Schema Format Definition.

Defines the YAML structure describing which columns a product import file may
carry. The schema tells the pipeline:
1. Which semantic fields exist (key) and how operators label them (label)
2. Which fields must be present as columns before any write happens (required)
3. What a blank cell means for a row (on_blank):
   - fail:    the row is a data error and becomes Failed
   - skip:    the row is intentionally incomplete and becomes Skipped
   - default: the configured default value is used
   - omit:    the field is left out of the created product
   blank_message is the operator-facing reason for fail and skip.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class BlankPolicy(str, Enum):
    FAIL = "fail"
    SKIP = "skip"
    DEFAULT = "default"
    OMIT = "omit"


class ColumnSpec(BaseModel):
    key: str
    label: str
    required: bool = False
    on_blank: BlankPolicy = BlankPolicy.OMIT
    default: Optional[str] = None
    blank_message: Optional[str] = None
    description: Optional[str] = None
    example: Optional[str] = None


class ImportSchema(BaseModel):
    schema_name: str
    schema_version: str = "1.0"
    columns: list[ColumnSpec]

    @property
    def required_columns(self) -> list[ColumnSpec]:
        return [c for c in self.columns if c.required]

    @property
    def optional_columns(self) -> list[ColumnSpec]:
        return [c for c in self.columns if not c.required]

    def column(self, key: str) -> ColumnSpec:
        for col in self.columns:
            if col.key == key:
                return col
        raise KeyError(f"Unknown schema key: {key}")

    def keys_with_policy(self, policy: BlankPolicy) -> list[str]:
        return [c.key for c in self.columns if c.on_blank == policy]


def default_product_schema() -> ImportSchema:
    """The built-in product import schema.

    Mirrors schemas/products.yaml so the service works without a schemas dir.
    """
    return ImportSchema(
        schema_name="products",
        columns=[
            ColumnSpec(key="name", label="Name", required=True, on_blank=BlankPolicy.FAIL,
                       blank_message="Product name is required",
                       description="Product name", example="Kada Bangles Set"),
            ColumnSpec(key="category", label="Category", required=True, on_blank=BlankPolicy.FAIL,
                       blank_message="Category name is required",
                       description="Category name (auto-created if not found)", example="Bangles"),
            ColumnSpec(key="type", label="Type", required=True, on_blank=BlankPolicy.SKIP,
                       blank_message="Product type is required",
                       description="Product type (auto-created if not found)", example="Kada Bangles"),
            ColumnSpec(key="mrp_price", label="MRP Price", required=True, on_blank=BlankPolicy.DEFAULT,
                       default="0", description="Maximum retail price", example="500"),
            ColumnSpec(key="title", label="Title", on_blank=BlankPolicy.DEFAULT, default="Silk Thread",
                       description="Material/brand (default: Silk Thread)", example="Silk Thread"),
            ColumnSpec(key="offer_price", label="Offer Price", on_blank=BlankPolicy.OMIT,
                       description="Discounted price", example="400"),
            ColumnSpec(key="ribbon", label="Ribbon", on_blank=BlankPolicy.DEFAULT, default="",
                       description="Badge text (New, Trending, etc.)", example="Bestseller"),
            ColumnSpec(key="description", label="Description", on_blank=BlankPolicy.DEFAULT, default="",
                       description="Product description", example="Beautiful handcrafted bangles"),
            ColumnSpec(key="images", label="Images", on_blank=BlankPolicy.DEFAULT, default="",
                       description="Comma-separated image URLs", example="url1.jpg, url2.jpg"),
            ColumnSpec(key="status", label="Status", on_blank=BlankPolicy.DEFAULT, default="active",
                       description="active or inactive (default: active)", example="active"),
        ],
    )
