"""FastAPI application for the IT asset import service.

create_app() is the factory used by the server entry point and by tests.
Every response, errors included, uses the {success, data, message} envelope.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from asset_import.api.dependencies import StoreFactory, postgres_store_factory
from asset_import.api.routes import router, send
from asset_import.config.loader import load_config
from asset_import.logging.init import setup_logging
from asset_import.models.config_models import AppConfig
from asset_import.services.importer import DuplicateAsset, ImportRejected

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig | None = None,
    store_factory: StoreFactory | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: parsed configuration; loaded from config/import.yml (or
            $ASSET_IMPORT_CONFIG) when omitted
        store_factory: zero-argument callable returning a context manager that
            yields an AssetStore; defaults to one psycopg2 connection per request
    """
    config = config or load_config()
    app = FastAPI(title="IT Asset Import API")
    app.state.config = config
    app.state.store_factory = store_factory or postgres_store_factory(config)

    @app.exception_handler(ImportRejected)
    async def import_rejected_handler(request: Request, exc: ImportRejected):
        logger.info("rejected %s %s: %s", request.method, request.url.path, exc.message)
        return send(400, exc.data, exc.message)

    @app.exception_handler(DuplicateAsset)
    async def duplicate_handler(request: Request, exc: DuplicateAsset):
        return send(409, None, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = ", ".join(str(e.get("msg", "")) for e in exc.errors()) or "Invalid request"
        return send(400, None, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return send(exc.status_code, None, str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return send(500, None, "Server Error")

    app.include_router(router, prefix=config.api.prefix, tags=["assets"])

    @app.get(f"{config.api.prefix}/health")
    def health():
        return send(200, {"status": "ok"}, "Service healthy")

    return app


def main() -> None:  # pragma: no cover - process entry point
    import uvicorn

    load_dotenv(dotenv_path=Path(".env"), override=True)
    setup_logging()
    app = create_app()
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
