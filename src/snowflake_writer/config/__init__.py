"""Configuration management for the Snowflake writer.

Runtime defaults come from environment variables through Pydantic
BaseSettings; table mappings and credentials come from ``config.yml`` in the
data directory.

Usage:
    >>> from snowflake_writer.config import get_settings, load_writer_config
    >>> settings = get_settings()
    >>> config = load_writer_config("/data/config.yml")
"""

from snowflake_writer.config.settings import Settings, get_settings
from snowflake_writer.config.table_config import (
    ColumnConfig,
    DatabaseConfig,
    LoadMode,
    TableConfig,
    WriterConfig,
    WriterParameters,
    load_table_manifest,
    load_writer_config,
)

__all__ = [
    "Settings",
    "get_settings",
    "ColumnConfig",
    "DatabaseConfig",
    "LoadMode",
    "TableConfig",
    "WriterConfig",
    "WriterParameters",
    "load_table_manifest",
    "load_writer_config",
]
