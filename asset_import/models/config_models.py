from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the IT asset import service.

These are the typed view of config/import.yml produced by
asset_import.config.loader.load_config. Environment variables are resolved
later (see loader.resolve_dsn) so the dataclasses stay a pure reflection of
the YAML file.
"""

__all__ = [
    "DatabaseConfig",
    "ImportSettings",
    "ApiConfig",
    "AppConfig",
]


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportSettings:
    """Hard limits and batching parameters for the import pipeline."""
    batch_size: int = 500  # rows per insert_many round-trip
    max_spreadsheet_rows: int = 5000
    max_bulk_assets: int = 1000
    max_upload_bytes: int = 10 * 1024 * 1024
    max_reported_errors: int = 50  # insertErrors はこの件数で打ち切り


@dataclass(frozen=True)
class ApiConfig:
    prefix: str = ""


@dataclass(frozen=True)
class AppConfig:
    """Root configuration object."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    imports: ImportSettings = field(default_factory=ImportSettings)
    api: ApiConfig = field(default_factory=ApiConfig)
    error_log_dir: str | None = None  # None なら JSON Lines エラーログを出力しない
