"""Request-scoped dependencies for the asset API.

The store factory lives on app.state so tests (and alternative deployments)
can swap the PostgreSQL connection for something else.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from functools import partial

from fastapi import Request

from asset_import.config.loader import resolve_dsn
from asset_import.db.asset_store import AssetStore, connect
from asset_import.logging.error_log import ErrorLogBuffer
from asset_import.models.config_models import AppConfig

StoreFactory = Callable[[], AbstractContextManager[AssetStore]]


def postgres_store_factory(config: AppConfig) -> StoreFactory:
    """Factory opening one psycopg2 connection per request."""
    return partial(connect, resolve_dsn(config.database))


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_store_factory(request: Request) -> StoreFactory:
    """Routes open the store only after the request passed its input checks."""
    return request.app.state.store_factory


def get_error_log(request: Request) -> ErrorLogBuffer | None:
    config: AppConfig = request.app.state.config
    if not config.error_log_dir:
        return None
    return ErrorLogBuffer(config.error_log_dir)
