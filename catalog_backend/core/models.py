"""Pydantic models for catalog vertex types, pipeline results and API schemas."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class CatalogKind(str, Enum):
    CATEGORY = "category"
    PRODUCT_TYPE = "product_type"
    PRODUCT = "product"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CreateStatus(str, Enum):
    CREATED = "created"
    CONFLICT = "conflict"
    ERROR = "error"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


# --- Core vertex models ---


class CategoryModel(BaseModel):
    id: str
    name: str
    normalized_name: str
    slug: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class ProductTypeModel(BaseModel):
    id: str
    name: str
    normalized_name: str
    slug: str
    category_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ProductModel(BaseModel):
    id: str
    name: str
    normalized_name: str
    category_id: str
    type_id: str
    mrp_price: Decimal
    offer_price: Optional[Decimal] = None
    product_title: str
    ribbon: str = ""
    description: str = ""
    status: ProductStatus = ProductStatus.ACTIVE
    images: list[str] = []
    options: list[dict] = []
    created_at: Optional[datetime] = None


CatalogEntity = CategoryModel | ProductTypeModel | ProductModel


# --- Store and pipeline results ---


@dataclass(frozen=True)
class CreateResult:
    """Tagged result of an entity-store create call."""
    status: CreateStatus
    entity: Optional[CatalogEntity] = None
    error: Optional[str] = None

    @classmethod
    def created(cls, entity: CatalogEntity) -> "CreateResult":
        return cls(CreateStatus.CREATED, entity=entity)

    @classmethod
    def conflict(cls, detail: str = "already exists") -> "CreateResult":
        return cls(CreateStatus.CONFLICT, error=detail)

    @classmethod
    def failed(cls, error: str) -> "CreateResult":
        return cls(CreateStatus.ERROR, error=error)


@dataclass(frozen=True)
class RowOutcome:
    """Terminal classification of one row. Produced once, never revised."""
    kind: OutcomeKind
    row_number: int
    name: str = ""
    created_id: Optional[str] = None
    reason: Optional[str] = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls, row_number: int, name: str, created_id: str, notes=()) -> "RowOutcome":
        return cls(OutcomeKind.SUCCESS, row_number, name, created_id=created_id, notes=tuple(notes))

    @classmethod
    def duplicate(cls, row_number: int, name: str, reason: str, notes=()) -> "RowOutcome":
        return cls(OutcomeKind.DUPLICATE, row_number, name, reason=reason, notes=tuple(notes))

    @classmethod
    def skipped(cls, row_number: int, name: str, reason: str, notes=()) -> "RowOutcome":
        return cls(OutcomeKind.SKIPPED, row_number, name, reason=reason, notes=tuple(notes))

    @classmethod
    def failed(cls, row_number: int, name: str, error: str, notes=()) -> "RowOutcome":
        return cls(OutcomeKind.FAILED, row_number, name, reason=error, notes=tuple(notes))


# --- Import API models ---


class LogEntryResponse(BaseModel):
    row: Optional[int] = None
    kind: str
    message: str


class RunSummaryResponse(BaseModel):
    total: int
    expected: int
    succeeded: int
    duplicates: int
    skipped: int
    failed: int
    log: list[LogEntryResponse] = []


class ImportRunResponse(BaseModel):
    run_id: str
    status: str
    source_file: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    summary: Optional[RunSummaryResponse] = None
    validation_errors: list[str] = []
    column_mapping: dict[str, str] = {}


class ImportPreviewResponse(BaseModel):
    source_file: str
    headers: list[str]
    column_mapping: dict[str, str]
    missing_required: list[str]
    unrecognized_headers: list[str]
    row_count: int
    sample_rows: list[dict[str, str]] = []
    validation_errors: list[str] = []
