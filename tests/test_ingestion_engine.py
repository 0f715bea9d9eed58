"""Tests for the ingestion engine: in-memory entity and blob stores."""

import io
from decimal import Decimal
from unittest.mock import MagicMock

import openpyxl
import pytest

from catalog_backend.core.column_reconciler import RowRecord
from catalog_backend.core.image_acquisition import ImageAcquirer
from catalog_backend.core.import_template import build_template_csv
from catalog_backend.core.ingestion_engine import (
    NO_IMAGES_NOTE,
    PARTIAL_IMAGES_NOTE,
    STATUS_COMPLETED,
    STATUS_REJECTED,
    STATUS_STOPPED,
    RowIngestionEngine,
    parse_price,
    parse_status,
    run_import,
)
from catalog_backend.core.models import CatalogKind, OutcomeKind, ProductStatus
from catalog_backend.core.run_reporter import RunReporter
from tests.conftest import FakeBlobStore, FakeEntityStore, HEADER, make_csv, product_row


def _run(store, blob_store, schema, rows, **kwargs):
    return run_import(make_csv(rows), "products.csv", store, blob_store, schema=schema, **kwargs)


def _kinds(result) -> list[str]:
    return [e.kind for e in result.summary.log if e.kind != "note"]


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------

class TestParsePrice:
    @pytest.mark.parametrize("raw,expected", [
        ("500", Decimal("500")),
        (" 499.50 ", Decimal("499.50")),
        ("1,250", Decimal("1250")),
        ("0", Decimal("0")),
    ])
    def test_valid(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "abc", "NaN", "Infinity", "-5", "5 rupees"])
    def test_invalid_is_none(self, raw):
        assert parse_price(raw) is None


class TestParseStatus:
    @pytest.mark.parametrize("raw,expected", [
        ("INACTIVE", ProductStatus.INACTIVE),
        (" inactive ", ProductStatus.INACTIVE),
        ("Active", ProductStatus.ACTIVE),
        ("", ProductStatus.ACTIVE),
        ("archived", ProductStatus.ACTIVE),
    ])
    def test_folding(self, raw, expected):
        assert parse_status(raw) == expected


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_single_row_without_images(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [product_row("Silk Bangles", "Bangles", "Kada", "500")])
        assert result.status == STATUS_COMPLETED
        assert result.summary.succeeded == 1
        product = next(iter(store.products.values()))
        assert product.images == []
        assert product.mrp_price == Decimal("500")
        assert blob_store.calls == []
        assert result.summary.log[-1].message == 'Row 1: "Silk Bangles" - Success'

    def test_identical_rows_in_one_batch(self, store, blob_store, schema):
        row = product_row("Silk Bangles", "Bangles", "Kada", "500")
        result = _run(store, blob_store, schema, [row, row])
        assert _kinds(result) == ["success", "duplicate"]
        assert len(store.products) == 1

    def test_one_image_unreachable(self, store, blob_store, schema):
        images = "https://img.test/good.jpg, https://unreachable.test/bad.jpg"
        result = _run(store, blob_store, schema, [product_row(images=images)])
        assert result.summary.succeeded == 1
        product = next(iter(store.products.values()))
        assert len(product.images) == 1
        assert f"Row 1: {PARTIAL_IMAGES_NOTE}" in [e.message for e in result.summary.log]

    def test_blob_store_outage_keeps_row(self, store, schema):
        result = _run(store, FakeBlobStore(outage=True), schema, [product_row(images="https://img.test/a.jpg")])
        assert result.summary.succeeded == 1
        assert next(iter(store.products.values())).images == []
        assert f"Row 1: {NO_IMAGES_NOTE}" in [e.message for e in result.summary.log]

    def test_missing_mrp_column_aborts(self, store, blob_store, schema):
        header = ["Name", "Category", "Type", "Images"]
        content = make_csv([["Silk Bangles", "Bangles", "Kada", ""]], header=header)
        result = run_import(content, "products.csv", store, blob_store, schema=schema)
        assert result.status == STATUS_REJECTED
        assert "MRP Price" in result.validation_errors[0]
        assert result.summary.total == 0
        assert store.create_calls == []
        assert store.lookup_calls == []

    def test_empty_type_skips_without_creates(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [product_row("Silk Bangles", "New Category", "", "500")])
        assert _kinds(result) == ["skipped"]
        assert result.summary.log[-1].message == "Row 1: Skipped - Product type is required"
        assert store.create_calls == []

    def test_new_category_created_once(self, store, blob_store, schema):
        rows = [
            product_row("Silk Bangles", "Bangles", "Kada", "500"),
            product_row("Gold Bangles", "bangles ", "Kada", "700"),
        ]
        result = _run(store, blob_store, schema, rows)
        assert result.summary.succeeded == 2
        assert len(store.creates_of(CatalogKind.CATEGORY)) == 1
        assert len(store.creates_of(CatalogKind.PRODUCT_TYPE)) == 1
        notes = [e.message for e in result.summary.log if e.kind == "note"]
        assert notes == ['✓ Created category: "Bangles"', '✓ Created type: "Kada" in Bangles']

    def test_reimport_is_all_duplicates(self, store, blob_store, schema):
        rows = [
            product_row("Silk Bangles", "Bangles", "Kada", "500"),
            product_row("Jhumka", "Earrings", "Jhumkha", "350"),
            product_row("Hair Band", "Hair", "Band", "120"),
        ]
        first = _run(store, blob_store, schema, rows)
        creates_after_first = len(store.create_calls)
        second = _run(store, blob_store, schema, rows)

        assert first.summary.succeeded == 3
        assert second.summary.duplicates == 3
        assert len(store.create_calls) == creates_after_first

    def test_same_product_different_price_is_new(self, store, blob_store, schema):
        rows = [product_row(mrp="500"), product_row(mrp="550")]
        result = _run(store, blob_store, schema, rows)
        assert _kinds(result) == ["success", "success"]

    def test_equivalent_prices_are_duplicates(self, store, blob_store, schema):
        rows = [product_row(mrp="500"), product_row(mrp="500.00")]
        assert _kinds(_run(store, blob_store, schema, rows)) == ["success", "duplicate"]

    def test_unparsable_mrp_defaults_to_zero(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [product_row(category="Anklets", ptype="Payal", mrp="call us")])
        assert _kinds(result) == ["success"]
        assert next(iter(store.products.values())).mrp_price == Decimal(0)
        assert len(store.creates_of(CatalogKind.CATEGORY)) == 1
        assert len(store.creates_of(CatalogKind.PRODUCT_TYPE)) == 1

    def test_hash_prefixed_name_is_imported(self, store, blob_store, schema):
        rows = [product_row(name="#1 Bestseller Kada"), product_row(name="Plain Kada")]
        result = _run(store, blob_store, schema, rows)
        assert result.summary.total == 2
        assert _kinds(result) == ["success", "success"]
        assert result.summary.log[-2].message == 'Row 1: "#1 Bestseller Kada" - Success'


# ---------------------------------------------------------------------------
# Row classification
# ---------------------------------------------------------------------------

class TestRowClassification:
    def test_blank_name_fails(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [product_row(name=" ")])
        assert _kinds(result) == ["failed"]
        assert result.summary.log[-1].message == 'Row 1: "Unknown" - Product name is required'

    def test_blank_category_fails(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [product_row(category="")])
        assert _kinds(result) == ["failed"]
        assert "Category name is required" in result.summary.log[-1].message
        assert store.create_calls == []

    def test_type_creation_failure_skips(self, store, blob_store, schema):
        store.fail_on[CatalogKind.PRODUCT_TYPE] = "constraint violated"
        result = _run(store, blob_store, schema, [product_row(ptype="Kada")])
        assert _kinds(result) == ["skipped"]
        assert 'Failed to create product type "Kada"' in result.summary.log[-1].message

    def test_category_creation_failure_fails_row(self, store, blob_store, schema):
        store.fail_on[CatalogKind.CATEGORY] = "quota exceeded"
        result = _run(store, blob_store, schema, [product_row()])
        assert _kinds(result) == ["failed"]
        assert "quota exceeded" in result.summary.log[-1].message

    def test_create_conflict_is_duplicate(self, store, blob_store, schema):
        store.race_on.add(CatalogKind.PRODUCT)
        result = _run(store, blob_store, schema, [product_row()])
        assert _kinds(result) == ["duplicate"]

    def test_create_error_is_failed(self, store, blob_store, schema):
        store.fail_on[CatalogKind.PRODUCT] = "disk full"
        result = _run(store, blob_store, schema, [product_row()])
        assert _kinds(result) == ["failed"]
        assert result.summary.log[-1].message == 'Row 1: "Silk Bangles" - disk full'

    def test_duplicate_probe_skips_images(self, store, blob_store, schema):
        row = product_row(images="https://img.test/a.jpg")
        _run(store, blob_store, schema, [row])
        calls = len(blob_store.calls)
        result = _run(store, blob_store, schema, [row])
        assert _kinds(result) == ["duplicate"]
        assert len(blob_store.calls) == calls

    def test_skipped_row_fetches_no_images(self, store, blob_store, schema):
        _run(store, blob_store, schema, [product_row(ptype="", images="https://img.test/a.jpg")])
        assert blob_store.calls == []

    def test_unexpected_error_does_not_stop_later_rows(self, blob_store, schema):
        store = FakeEntityStore()
        original = store.exists_by_composite_key
        calls = {"n": 0}

        def flaky(*args):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConnectionError("graphd timeout")
            return original(*args)

        store.exists_by_composite_key = flaky
        result = _run(store, blob_store, schema, [product_row("A"), product_row("B")])
        assert _kinds(result) == ["failed", "success"]
        failed = [e for e in result.summary.log if e.kind == "failed"]
        assert failed[0].message == 'Row 1: "A" - graphd timeout'

    def test_defaults_and_optional_fields(self, store, blob_store, schema):
        row = product_row(mrp="abc", offer_price="n/a", status="INACTIVE", ribbon="New")
        _run(store, blob_store, schema, [row])
        product = next(iter(store.products.values()))
        assert product.mrp_price == Decimal("0")
        assert product.offer_price is None
        assert product.product_title == "Silk Thread"
        assert product.status == ProductStatus.INACTIVE
        assert product.ribbon == "New"

    def test_offer_price_kept(self, store, blob_store, schema):
        _run(store, blob_store, schema, [product_row(offer_price="449.5", title="Cotton")])
        product = next(iter(store.products.values()))
        assert product.offer_price == Decimal("449.5")
        assert product.product_title == "Cotton"

    def test_name_trimmed(self, store, blob_store, schema):
        _run(store, blob_store, schema, [product_row(name="  Silk Bangles  ")])
        assert next(iter(store.products.values())).name == "Silk Bangles"


# ---------------------------------------------------------------------------
# Run-level properties
# ---------------------------------------------------------------------------

class TestRunProperties:
    def test_counters_add_up(self, store, blob_store, schema):
        rows = [
            product_row("A"),
            product_row("A"),
            product_row("B", ptype=""),
            product_row("", category="X"),
            product_row("C", mrp="10"),
        ]
        s = _run(store, blob_store, schema, rows).summary
        assert s.total == len(rows) == s.expected
        assert s.succeeded + s.duplicates + s.skipped + s.failed == s.total
        assert (s.succeeded, s.duplicates, s.skipped, s.failed) == (2, 1, 1, 1)

    def test_log_in_row_order(self, store, blob_store, schema):
        rows = [product_row(str(i), mrp=str(i)) for i in range(1, 6)]
        result = _run(store, blob_store, schema, rows)
        assert [e.row for e in result.summary.log if e.kind != "note"] == [1, 2, 3, 4, 5]

    def test_stop_between_rows(self, store, blob_store, schema):
        rows = [product_row(str(i), mrp=str(i)) for i in range(1, 6)]
        checks = iter([False, False, True])
        result = _run(store, blob_store, schema, rows, should_stop=lambda: next(checks, True))
        assert result.status == STATUS_STOPPED
        assert result.summary.total == 2
        assert len(store.products) == 2

    def test_empty_file_rejected(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [])
        assert result.status == STATUS_REJECTED
        assert result.validation_errors == ["File has no data rows"]

    def test_unparsable_file_rejected(self, store, blob_store, schema):
        content = b"Name,Category,Type,MRP Price\na,b,c,1,extra\n"
        result = run_import(content, "products.csv", store, blob_store, schema=schema)
        assert result.status == STATUS_REJECTED
        assert store.create_calls == []

    def test_progress_published_per_row(self, store, blob_store, schema):
        sink = MagicMock()
        rows = [product_row("A"), product_row("B")]
        result = _run(store, blob_store, schema, rows, run_id="ir_test", progress_sink=sink)
        # one per recorded row, plus the final snapshot
        assert sink.call_count == 3
        run_id, payload = sink.call_args.args
        assert run_id == "ir_test" == result.run_id
        assert payload["status"] == STATUS_COMPLETED
        assert payload["summary"]["succeeded"] == 2

    def test_progress_failure_ignored(self, store, blob_store, schema):
        sink = MagicMock(side_effect=RuntimeError("redis down"))
        result = _run(store, blob_store, schema, [product_row()], progress_sink=sink)
        assert result.summary.succeeded == 1

    def test_seeded_cache_skips_lookups(self, store, blob_store, schema):
        cat = store.add_category("Bangles")
        store.add_product_type("Kada", cat)
        _run(store, blob_store, schema, [product_row()], seed_cache=True)
        assert store.lookup_calls == []

    def test_column_mapping_reported(self, store, blob_store, schema):
        result = _run(store, blob_store, schema, [product_row()])
        assert result.column_mapping["mrp_price"] == "MRP Price"

    def test_xlsx_upload(self, store, blob_store, schema):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(HEADER[:4])
        ws.append(["Silk Bangles", "Bangles", "Kada", 500])
        buf = io.BytesIO()
        wb.save(buf)
        result = run_import(buf.getvalue(), "products.xlsx", store, blob_store, schema=schema)
        assert result.summary.succeeded == 1
        assert next(iter(store.products.values())).mrp_price == Decimal("500")

    def test_template_imports_cleanly(self, store, blob_store, schema):
        content = build_template_csv(schema).encode("utf-8")
        result = run_import(content, "template.csv", store, blob_store, schema=schema)
        assert result.status == STATUS_COMPLETED
        assert result.summary.succeeded == 3


class TestRowIngestionEngine:
    def test_process_row_directly(self, store, blob_store, schema):
        reporter = RunReporter(expected=1)
        engine = RowIngestionEngine(store, ImageAcquirer(blob_store, bucket="products"), reporter, schema)
        record = RowRecord(row_number=7, values={
            "name": "Silk Bangles", "category": "Bangles", "type": "Kada", "mrp_price": "500",
        })
        outcome = engine.process_row(record)
        assert outcome.kind == OutcomeKind.SUCCESS
        assert outcome.row_number == 7
        assert outcome.created_id in store.products
        assert reporter.summary().succeeded == 1
