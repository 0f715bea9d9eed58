"""Ingestion Engine: orchestrates a bulk product import.

Takes an uploaded CSV/Excel file, validates its columns against the import
schema, then walks the rows strictly in order. Each row goes through:

    validate -> resolve references -> duplicate probe -> images -> create

and ends as exactly one RowOutcome (success, duplicate, skipped, failed).
No row-level exception escapes process_row, so one bad row never stops the
rows after it.

Synchronous by design: the API runs run_import in a worker thread.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Optional

from catalog_backend.core.blob_store import BlobStore
from catalog_backend.core.column_reconciler import RowRecord, validate_columns
from catalog_backend.core.entity_store import EntityStore
from catalog_backend.core.errors import FatalValidationError, RowDataError
from catalog_backend.core.image_acquisition import ImageAcquirer
from catalog_backend.core.import_schema import BlankPolicy, ImportSchema
from catalog_backend.core.keys import generate_id, normalize_name
from catalog_backend.core.models import (
    CatalogKind,
    CreateStatus,
    ProductStatus,
    RowOutcome,
)
from catalog_backend.core.reference_resolver import (
    ReferenceCache,
    ReferenceResolver,
    SkipSignal,
)
from catalog_backend.core.run_reporter import RunReporter, RunSummary
from catalog_backend.core.schema_loader import load_default_schema
from catalog_backend.core.tabular_parser import parse_upload

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_STOPPED = "stopped"
STATUS_REJECTED = "rejected"

DUPLICATE_REASON = "A product with this name, category, type, and MRP price already exists"
PARTIAL_IMAGES_NOTE = "Some images failed to upload"
NO_IMAGES_NOTE = "Image upload failed - continuing without images"

ProgressSink = Callable[[str, dict], None]


@dataclass
class ImportResult:
    """Result of an import run."""
    run_id: str
    status: str  # "completed" | "stopped" | "rejected"
    source_file: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    summary: RunSummary = field(default_factory=RunSummary)
    validation_errors: list[str] = field(default_factory=list)
    column_mapping: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "source_file": self.source_file,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": self.summary.to_dict(),
            "validation_errors": list(self.validation_errors),
            "column_mapping": dict(self.column_mapping),
        }


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    """Parse a price cell. None when blank, unparsable or negative.

    Thousands separators are accepted: "1,250.50" -> Decimal("1250.50").
    """
    text = (raw or "").strip().replace(",", "")
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def parse_status(raw: Optional[str]) -> ProductStatus:
    if (raw or "").strip().lower() == ProductStatus.INACTIVE.value:
        return ProductStatus.INACTIVE
    return ProductStatus.ACTIVE


class RowIngestionEngine:
    def __init__(
        self,
        store: EntityStore,
        acquirer: ImageAcquirer,
        reporter: RunReporter,
        schema: ImportSchema,
        resolver: Optional[ReferenceResolver] = None,
    ):
        self.store = store
        self.acquirer = acquirer
        self.reporter = reporter
        self.schema = schema
        self.resolver = resolver or ReferenceResolver(store, ReferenceCache())

    def run(
        self,
        records: Iterable[RowRecord],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Process records in order. False if a stop request ended the run early."""
        for record in records:
            if should_stop is not None and should_stop():
                logger.info(f"Stop requested before row {record.row_number}")
                return False
            self.process_row(record)
        return True

    def process_row(self, record: RowRecord) -> RowOutcome:
        notes: list[str] = []
        name = record.get("name").strip()
        try:
            outcome = self._process(record, name, notes)
        except RowDataError as e:
            logger.warning(f"Row {record.row_number}: {e}")
            outcome = RowOutcome.failed(record.row_number, name, str(e), notes)
        except Exception as e:
            logger.error(f"Row {record.row_number} failed: {e}", exc_info=True)
            outcome = RowOutcome.failed(record.row_number, name, str(e) or type(e).__name__, notes)

        self.reporter.record(record.row_number, outcome)
        return outcome

    def _value(self, record: RowRecord, key: str) -> Optional[str]:
        """Trimmed cell value with the blank policy applied. None when omitted."""
        value = record.get(key).strip()
        if value:
            return value
        col = self.schema.column(key)
        if col.on_blank == BlankPolicy.DEFAULT:
            return col.default or ""
        return None

    def _check_blanks(self, record: RowRecord) -> Optional[str]:
        """Raise for blank fail-policy fields; return a skip reason for skip-policy ones."""
        for col in self.schema.columns:
            if col.on_blank == BlankPolicy.FAIL and not record.get(col.key).strip():
                raise RowDataError(col.blank_message or f"{col.label} is required")
        for col in self.schema.columns:
            if col.on_blank == BlankPolicy.SKIP and not record.get(col.key).strip():
                return col.blank_message or f"{col.label} is required"
        return None

    def _process(self, record: RowRecord, name: str, notes: list[str]) -> RowOutcome:
        row = record.row_number

        # Validating
        skip_reason = self._check_blanks(record)
        if skip_reason:
            return RowOutcome.skipped(row, name, skip_reason)

        # Resolving
        resolved = self.resolver.resolve(record.get("category"), record.get("type"))
        if isinstance(resolved, SkipSignal):
            return RowOutcome.skipped(row, name, resolved.reason)
        category, product_type = resolved.category, resolved.product_type
        if resolved.created_category:
            self.reporter.note(None, f'✓ Created category: "{category.name}"')
        if resolved.created_type:
            self.reporter.note(None, f'✓ Created type: "{product_type.name}" in {category.name}')

        # Parsed after resolving: an unreadable MRP becomes 0, never a reason to drop the row.
        mrp_price = parse_price(self._value(record, "mrp_price"))
        if mrp_price is None:
            mrp_price = Decimal(0)
        offer_price = parse_price(self._value(record, "offer_price"))

        # Deduplicating
        normalized = normalize_name(name)
        if self.store.exists_by_composite_key(normalized, category.id, product_type.id, mrp_price):
            return RowOutcome.duplicate(row, name, DUPLICATE_REASON)

        # AcquiringImages
        batch = self.acquirer.acquire(self._value(record, "images"))
        if batch.failed_outright:
            notes.append(NO_IMAGES_NOTE)
        elif batch.errors:
            notes.append(PARTIAL_IMAGES_NOTE)

        # Creating
        result = self.store.create(CatalogKind.PRODUCT, {
            "name": name,
            "category_id": category.id,
            "type_id": product_type.id,
            "mrp_price": mrp_price,
            "offer_price": offer_price,
            "product_title": self._value(record, "title") or "",
            "ribbon": self._value(record, "ribbon") or "",
            "description": self._value(record, "description") or "",
            "status": parse_status(self._value(record, "status")).value,
            "images": batch.urls,
        })
        if result.status == CreateStatus.CREATED:
            return RowOutcome.success(row, name, result.entity.id, notes)
        if result.status == CreateStatus.CONFLICT:
            return RowOutcome.duplicate(row, name, result.error or DUPLICATE_REASON, notes)
        return RowOutcome.failed(row, name, result.error or "Create failed", notes)


def run_import(
    content: bytes,
    filename: str,
    store: EntityStore,
    blob_store: BlobStore,
    schema: Optional[ImportSchema] = None,
    run_id: Optional[str] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    progress_sink: Optional[ProgressSink] = None,
    seed_cache: bool = False,
) -> ImportResult:
    """Run a full product import from an uploaded file.

    Steps:
    1. Parse the file (all-or-nothing)
    2. Reconcile headers against the schema; stop here on missing columns
    3. Process every row in order, recording each outcome
    4. Publish the final summary
    """
    run_id = run_id or generate_id("ir_")
    started_at = datetime.now(timezone.utc)
    schema = schema or load_default_schema()
    result = ImportResult(run_id=run_id, status=STATUS_RUNNING, source_file=filename, started_at=started_at)

    def publish(summary: Optional[RunSummary] = None) -> None:
        if progress_sink is None:
            return
        if summary is not None:
            result.summary = summary
        try:
            progress_sink(run_id, result.to_dict())
        except Exception as e:
            logger.warning(f"Progress publish failed for {run_id}: {e}")

    try:
        table = parse_upload(filename, content)
        mapping = validate_columns(table.headers, schema)
    except FatalValidationError as e:
        logger.warning(f"Import {run_id} rejected: {e}")
        return _finish(result, STATUS_REJECTED, publish, validation_errors=e.errors)

    result.column_mapping = dict(mapping.matches)
    if table.is_empty:
        logger.warning(f"Import {run_id} rejected: {filename} has no data rows")
        return _finish(result, STATUS_REJECTED, publish, validation_errors=["File has no data rows"])

    logger.info(f"Import {run_id} started: {len(table)} rows from {filename}")
    reporter = RunReporter(expected=len(table), on_change=publish)

    cache = ReferenceCache()
    if seed_cache:
        try:
            cache.seed(store)
        except Exception as e:
            logger.warning(f"Could not seed reference cache, falling back to lookups: {e}")

    engine = RowIngestionEngine(
        store=store,
        acquirer=ImageAcquirer(blob_store),
        reporter=reporter,
        schema=schema,
        resolver=ReferenceResolver(store, cache),
    )
    completed = engine.run((mapping.project(row) for row in table), should_stop=should_stop)

    result.summary = reporter.summary()
    s = result.summary
    status = STATUS_COMPLETED if completed else STATUS_STOPPED
    logger.info(
        f"Import {run_id} {status}: {s.succeeded} succeeded, {s.duplicates} duplicates, "
        f"{s.skipped} skipped, {s.failed} failed of {s.expected}"
    )
    return _finish(result, status, publish)


def _finish(
    result: ImportResult,
    status: str,
    publish: Callable[[], None],
    validation_errors: Optional[list[str]] = None,
) -> ImportResult:
    result.status = status
    result.completed_at = datetime.now(timezone.utc)
    if validation_errors:
        result.validation_errors = list(validation_errors)
    publish()
    return result
