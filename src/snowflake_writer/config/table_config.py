"""
Schema validation for the writer's ``config.yml`` and table manifests.

``config.yml`` lives in the data directory and carries the database
credentials plus either a list of tables or a single table row::

    parameters:
      db:
        host: acme.snowflakecomputing.com
        database: ANALYTICS
        schema: RAW
        user: LOADER
        "#password": "..."
        warehouse: LOAD_WH
      tables:
        - tableId: in.c-main.simple
          dbName: simple
          incremental: false
          primaryKey: [id]
          items:
            - {name: id, dbName: id, type: int, size: null, nullable: false}
            - {name: name, dbName: name, type: varchar, size: 255}

Each table's staged data is described by ``in/tables/<tableId>.csv.manifest``
(JSON) holding the CSV header order in ``columns`` and an ``s3`` or ``abs``
block pointing at the uploaded files.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from snowflake_writer.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

IGNORE_TYPE = "ignore"


class LoadMode(str, Enum):
    """Delivery mode for one table."""

    FULL = "full"
    INCREMENTAL = "incremental"


class ColumnConfig(BaseModel):
    """One column of a table mapping (file column -> warehouse column)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., description="Column name in the source file")
    db_name: str = Field(..., alias="dbName", description="Column name in Snowflake")
    type: str = Field(..., description="Declared type, or 'ignore' to skip the column")
    size: Optional[str] = Field(None, description="Length, or 'precision,scale'")
    nullable: bool = Field(False, description="Empty strings are loaded as NULL")
    default: Optional[str] = Field(None, description="Column default value")
    foreign_key_table: Optional[str] = Field(None, alias="foreignKeyTable")
    foreign_key_column: Optional[str] = Field(None, alias="foreignKeyColumn")

    @field_validator("size", "default", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        # YAML turns `size: 255` or `default: 0` into ints
        if value is None:
            return None
        if isinstance(value, bool):
            return "1" if value else "0"
        return str(value)

    @field_validator("size", mode="after")
    @classmethod
    def _empty_size_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def is_ignored(self) -> bool:
        return self.type.strip().lower() == IGNORE_TYPE

    @property
    def has_size(self) -> bool:
        return self.size is not None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def has_foreign_key(self) -> bool:
        return bool(self.foreign_key_table) and bool(self.foreign_key_column)


class TableConfig(BaseModel):
    """Mapping of one staged table onto a Snowflake table."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    table_id: str = Field(..., alias="tableId", description="Source table identifier")
    db_name: str = Field(..., alias="dbName", description="Target table in Snowflake")
    export: bool = Field(True, description="Whether the table is loaded at all")
    incremental: bool = Field(False, description="Merge instead of replace")
    primary_key: List[str] = Field(default_factory=list, alias="primaryKey")
    items: List[ColumnConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_columns(self) -> "TableConfig":
        seen: set[str] = set()
        duplicates: List[str] = []
        for item in self.exported_items:
            if item.db_name in seen:
                duplicates.append(item.db_name)
            seen.add(item.db_name)
        if duplicates:
            raise ValueError(
                f"Duplicate dbName in table '{self.db_name}': {', '.join(duplicates)}"
            )

        missing = [key for key in self.primary_key if key not in seen]
        if missing:
            raise ValueError(
                f"Primary key column(s) {', '.join(missing)} of table "
                f"'{self.db_name}' are not exported columns"
            )
        return self

    @property
    def load_mode(self) -> LoadMode:
        return LoadMode.INCREMENTAL if self.incremental else LoadMode.FULL

    @property
    def exported_items(self) -> List[ColumnConfig]:
        """Items that end up in the warehouse table (ignored columns removed)."""
        return [item for item in self.items if not item.is_ignored]

    @property
    def has_primary_key(self) -> bool:
        return bool(self.primary_key)

    def reordered(self, header: List[str]) -> "TableConfig":
        """
        Reorder items to match the staged file's header.

        Items whose ``name`` does not appear in the header are dropped, since
        the file has no column to feed them. Header columns without an item
        become ignored placeholders so positional references stay aligned.
        """
        by_name = {item.name: item for item in self.items}
        items = [
            by_name.get(column)
            or ColumnConfig(name=column, db_name=column, type=IGNORE_TYPE)
            for column in header
        ]
        return self.model_copy(update={"items": items})


class DatabaseConfig(BaseModel):
    """Snowflake connection parameters."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, hide_input_in_errors=True)

    host: str = Field(..., min_length=1)
    port: int = Field(443)
    database: str = Field(..., min_length=1)
    schema_name: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("schema", "schema_name")
    )
    user: str = Field(..., min_length=1)
    password: Optional[str] = Field(
        None, validation_alias=AliasChoices("#password", "password")
    )
    private_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("#privateKey", "privateKey", "private_key")
    )
    warehouse: Optional[str] = None
    run_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("runId", "run_id")
    )

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, value: Any) -> Any:
        if value is None or value == "":
            return 443
        return value

    @field_validator("warehouse", "run_id", "password", "private_key", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _validate_secret(self) -> "DatabaseConfig":
        if self.password is None and self.private_key is None:
            raise ValueError('Either "password" or "privateKey" must be provided.')
        if self.password is not None and self.private_key is not None:
            raise ValueError(
                'Both "password" and "privateKey" cannot be set at the same time.'
            )
        return self


_ROW_KEYS = ("tableId", "dbName", "export", "incremental", "primaryKey", "items")


class WriterParameters(BaseModel):
    """The ``parameters`` block of config.yml."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", hide_input_in_errors=True)

    db: DatabaseConfig
    tables: List[TableConfig] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _single_row_config(cls, values: Any) -> Any:
        # Row configurations carry one table inline instead of a `tables` list
        if isinstance(values, dict) and "tables" not in values and "tableId" in values:
            values = dict(values)
            values["tables"] = [{key: values[key] for key in _ROW_KEYS if key in values}]
        return values

    @property
    def exported_tables(self) -> List[TableConfig]:
        return [table for table in self.tables if table.export]


class WriterConfig(BaseModel):
    """Complete config.yml structure."""

    model_config = ConfigDict(hide_input_in_errors=True)

    action: Literal["run", "testConnection"] = "run"
    parameters: WriterParameters


def _describe_errors(error: ValidationError) -> str:
    # Input values are left out; the db block carries credentials
    return "; ".join(
        f"{'.'.join(str(part) for part in detail['loc']) or 'config'}: {detail['msg']}"
        for detail in error.errors(include_url=False, include_context=False, include_input=False)
    )


def load_writer_config(config_path: Union[str, Path]) -> WriterConfig:
    """
    Load and validate config.yml.

    Args:
        config_path: Path to config.yml

    Returns:
        Validated WriterConfig

    Raises:
        ConfigValidationError: If the file is missing, unparsable or invalid
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise ConfigValidationError(f"Configuration file not found: {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in configuration file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Configuration file {config_file} must contain a mapping"
        )

    try:
        config = WriterConfig(**data)
    except ValidationError as e:
        raise ConfigValidationError(
            f"config.yml validation failed: {_describe_errors(e)}"
        ) from e

    logger.info(
        "Loaded writer configuration with %d table(s)", len(config.parameters.tables)
    )
    return config


def load_table_manifest(data_dir: Union[str, Path], table_id: str) -> Dict[str, Any]:
    """
    Read the JSON manifest describing where a table's data was staged.

    Raises:
        ConfigValidationError: If the manifest is missing or not valid JSON
    """
    manifest_path = Path(data_dir) / "in" / "tables" / f"{table_id}.csv.manifest"
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigValidationError(
            f"Manifest for table '{table_id}' not found: {manifest_path}"
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigValidationError(
            f"Manifest for table '{table_id}' is not valid JSON: {e}"
        ) from e

    if not isinstance(manifest, dict):
        raise ConfigValidationError(f"Manifest for table '{table_id}' must be an object")
    return manifest
