"""Product import endpoints.

Handles upload preview, import execution, progress polling and the sample
template download. All endpoints require the admin token.
"""

import logging
import re
from typing import Optional

import redis as redis_lib
from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from fastapi.concurrency import run_in_threadpool

from catalog_backend.api.deps import (
    get_blob_store,
    get_entity_store,
    get_import_schema,
    get_progress_store,
    require_admin,
)
from catalog_backend.core.blob_store import BlobStore
from catalog_backend.core.column_reconciler import reconcile_columns
from catalog_backend.core.entity_store import EntityStore
from catalog_backend.core.errors import TableParseError
from catalog_backend.core.import_schema import ImportSchema
from catalog_backend.core.import_template import TEMPLATE_FILENAME, build_template_csv
from catalog_backend.core.ingestion_engine import STATUS_REJECTED, run_import
from catalog_backend.core.models import ImportPreviewResponse, ImportRunResponse
from catalog_backend.core.redis_client import RedisProgressStore
from catalog_backend.core.tabular_parser import parse_upload

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])

PREVIEW_ROWS = 5
_RUN_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


@router.post("/imports/preview", response_model=ImportPreviewResponse)
async def preview_import(
    file: UploadFile = File(...),
    schema: ImportSchema = Depends(get_import_schema),
):
    """Parse an upload and show how its columns map. Writes nothing."""
    content = await file.read()
    try:
        table = parse_upload(file.filename or "", content)
    except TableParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    mapping = reconcile_columns(table.headers, schema)
    errors = []
    if not mapping.is_complete:
        errors.append(f"Missing required columns: {', '.join(mapping.missing_required)}")
    if table.is_empty:
        errors.append("File has no data rows")

    sample = []
    for i, row in enumerate(table):
        if i >= PREVIEW_ROWS:
            break
        sample.append(dict(mapping.project(row).values))

    return ImportPreviewResponse(
        source_file=file.filename or "",
        headers=list(table.headers),
        column_mapping=dict(mapping.matches),
        missing_required=list(mapping.missing_required),
        unrecognized_headers=list(mapping.unclaimed_headers),
        row_count=len(table),
        sample_rows=sample,
        validation_errors=errors,
    )


@router.post("/imports", response_model=ImportRunResponse)
async def create_import(
    file: UploadFile = File(...),
    run_id: Optional[str] = Form(None),
    store: EntityStore = Depends(get_entity_store),
    blob_store: BlobStore = Depends(get_blob_store),
    progress: RedisProgressStore = Depends(get_progress_store),
    schema: ImportSchema = Depends(get_import_schema),
):
    """Upload a CSV/Excel file and import every row.

    - **file**: .csv or .xlsx with a header row
    - **run_id**: optional caller-chosen id, for polling GET /imports/{run_id}
    """
    if run_id is not None and not _RUN_ID_RE.match(run_id):
        raise HTTPException(status_code=400, detail=f"Invalid run id: '{run_id}'")

    content = await file.read()
    result = await run_in_threadpool(
        run_import,
        content,
        file.filename or "",
        store,
        blob_store,
        schema=schema,
        run_id=run_id,
        progress_sink=progress.publish,
    )

    if result.status == STATUS_REJECTED:
        raise HTTPException(
            status_code=400,
            detail={
                "run_id": result.run_id,
                "message": "; ".join(result.validation_errors),
                "validation_errors": result.validation_errors,
            },
        )
    return ImportRunResponse(**result.to_dict())


@router.get("/imports/template")
async def download_template(
    store: EntityStore = Depends(get_entity_store),
    schema: ImportSchema = Depends(get_import_schema),
):
    """Sample CSV using the current category and type names where possible."""
    try:
        categories = [c.name for c in store.list_categories()]
        types = [t.name for t in store.list_product_types()]
    except Exception as e:
        logger.warning(f"Could not list reference data for template: {e}")
        categories, types = [], []

    return Response(
        content=build_template_csv(schema, categories, types),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )


@router.get("/imports/{run_id}", response_model=ImportRunResponse)
async def get_import(
    run_id: str,
    progress: RedisProgressStore = Depends(get_progress_store),
):
    """Latest progress snapshot for a running or finished import."""
    try:
        payload = progress.read(run_id)
    except (redis_lib.RedisError, RuntimeError) as e:
        logger.error(f"Progress lookup failed for {run_id}: {e}")
        raise HTTPException(status_code=503, detail="Progress store unavailable")
    if payload is None:
        raise HTTPException(status_code=404, detail="Import run not found")
    return ImportRunResponse(**payload)
