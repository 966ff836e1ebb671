"""Domain models for the IT asset import service."""

from .asset import NormalizedRow
from .config_models import ApiConfig, AppConfig, DatabaseConfig, ImportSettings
from .error_record import ErrorRecord
from .import_report import BulkImportReport, ImportReport

__all__ = [
    # Configuration models
    "ApiConfig",
    "AppConfig",
    "DatabaseConfig",
    "ImportSettings",
    # Processing models
    "NormalizedRow",
    "ErrorRecord",
    "ImportReport",
    "BulkImportReport",
]
