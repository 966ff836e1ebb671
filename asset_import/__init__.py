"""IT asset register import service (spreadsheet / JSON bulk -> PostgreSQL)."""

__version__ = "0.1.0"
