"""Asset import routes.

POST /assets              single asset
POST /assets/bulk         JSON array import
POST /assets/upload-excel multipart spreadsheet import
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from asset_import.api.dependencies import (
    StoreFactory,
    get_config,
    get_error_log,
    get_store_factory,
)
from asset_import.logging.error_log import ErrorLogBuffer
from asset_import.models.config_models import AppConfig
from asset_import.services.importer import (
    ImportRejected,
    create_asset,
    insert_bulk,
    insert_prepared_sheet,
    prepare_asset,
    prepare_bulk,
    prepare_spreadsheet,
)

logger = logging.getLogger(__name__)
router = APIRouter()

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")


def send(status: int, data: Any, message: str) -> JSONResponse:
    """Uniform response envelope."""
    return JSONResponse(
        status_code=status,
        content=jsonable_encoder({"success": status < 400, "data": data, "message": message}),
    )


@router.post("/assets")
def create_asset_route(
    payload: Any = Body(None),
    store_factory: StoreFactory = Depends(get_store_factory),
) -> JSONResponse:
    if not isinstance(payload, dict):
        raise ImportRejected("Request body must be a JSON object")
    record = prepare_asset(payload)
    with store_factory() as store:
        asset = create_asset(record, store)
    return send(201, asset, "Asset created")


@router.post("/assets/bulk")
def bulk_create_route(
    payload: Any = Body(None),
    store_factory: StoreFactory = Depends(get_store_factory),
    config: AppConfig = Depends(get_config),
    error_log: ErrorLogBuffer | None = Depends(get_error_log),
) -> JSONResponse:
    body = payload if isinstance(payload, dict) else {}
    records = prepare_bulk(body.get("assets"), body.get("createdBy"), config.imports)
    with store_factory() as store:
        report = insert_bulk(records, store, config.imports, error_log=error_log)
    return send(201, report.to_dict(), report.message)


@router.post("/assets/upload-excel")
def upload_excel_route(
    file: UploadFile | None = File(None),
    createdBy: str | None = Form(None),
    store_factory: StoreFactory = Depends(get_store_factory),
    config: AppConfig = Depends(get_config),
    error_log: ErrorLogBuffer | None = Depends(get_error_log),
) -> JSONResponse:
    request_id = uuid.uuid4().hex[:8]
    if file is None or not file.filename:
        raise ImportRejected("Please upload an Excel file")
    if not file.filename.lower().endswith(EXCEL_SUFFIXES):
        logger.warning("[%s] reject non-Excel filename=%r", request_id, file.filename)
        raise ImportRejected("Only Excel files (.xlsx, .xls) are allowed")

    limit = config.imports.max_upload_bytes
    content = file.file.read(limit + 1)
    logger.info("[%s] upload filename=%r size=%d", request_id, file.filename, len(content))
    if len(content) > limit:
        raise ImportRejected(f"File too large. Maximum size is {limit // (1024 * 1024)}MB")

    # 入力チェックを全て通過してから DB 接続を開く
    prepared = prepare_spreadsheet(
        content, createdBy, config.imports, source_name=file.filename
    )
    with store_factory() as store:
        report = insert_prepared_sheet(prepared, store, config.imports, error_log=error_log)
    return send(201, report.to_dict(), report.message)
