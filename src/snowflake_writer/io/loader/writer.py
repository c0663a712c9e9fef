"""
Full and incremental load protocols for Snowflake.

Full load::

    create staging -> create target if missing -> COPY into staging
        -> swap staging with target -> drop staging

Incremental load::

    drop stale staging -> create staging -> COPY into staging
        -> create target if missing -> validate schema -> ensure primary key
        -> UPDATE matched / DELETE matched from staging / INSERT rest
        -> drop staging

The staging table is dropped on every exit path (see ``staging_table``).
"""

import re
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from snowflake_writer.config.settings import Settings, get_settings
from snowflake_writer.config.table_config import DatabaseConfig, LoadMode, TableConfig
from snowflake_writer.exceptions import SnowflakeWriterError, UserError
from snowflake_writer.infrastructure.schema.definition import (
    TIMESTAMP_TYPE_MAPPING_NTZ,
    TIMESTAMP_TYPE_MAPPINGS,
    InvalidSpec,
    TypeDefinition,
)
from snowflake_writer.io.adapters.base import StagingAdapter
from snowflake_writer.io.loader.connection import SnowflakeConnection
from snowflake_writer.io.loader.models import LoadResult
from snowflake_writer.io.loader.query_builder import SnowflakeQueryBuilder
from snowflake_writer.utils.logging import get_logger

logger = get_logger(__name__)

STAGE_NAME_PREFIX = "db-writer"
STAGING_TABLE_PREFIX = "__temp_"
MAX_OBJECT_NAME_LENGTH = 255

_OBJECT_DOES_NOT_EXIST = re.compile(r"Object does not exist", re.IGNORECASE)


def ensure_primary_key_matches(declared: Sequence[str], actual: Sequence[str]) -> None:
    """Compare configured and existing primary key columns, ignoring order."""
    declared_sorted = sorted(declared)
    actual_sorted = sorted(actual)
    if declared_sorted != actual_sorted:
        raise UserError(
            "Primary key(s) in configuration does NOT match with keys in DB table.\n"
            f"Keys in configuration: {','.join(declared_sorted)}\n"
            f"Keys in DB table: {','.join(actual_sorted)}"
        )


class SnowflakeWriter:
    """Loads staged files into Snowflake tables."""

    def __init__(
        self,
        database_config: DatabaseConfig,
        connection: Optional[SnowflakeConnection] = None,
        settings: Optional[Settings] = None,
    ):
        self.config = database_config
        self.settings = settings or get_settings()
        self.run_id = database_config.run_id or self.settings.run_id
        self.connection = connection or SnowflakeConnection.from_config(
            database_config, self.settings
        )
        self.query_builder = SnowflakeQueryBuilder(
            self.connection,
            schema=database_config.schema_name,
            database=database_config.database,
        )

        self._execute(
            self.query_builder.statement_timeout(self.settings.statement_timeout_seconds)
        )
        self._validate_and_set_warehouse()
        self._validate_and_set_schema()

    # Session bootstrap

    def _execute(self, sql: str) -> None:
        self.connection.execute(sql)

    def get_current_user(self) -> str:
        rows = self.connection.fetch_all(self.query_builder.current_user())
        return rows[0]["CURRENT_USER"]

    def get_user_default_warehouse(self) -> Optional[str]:
        rows = self.connection.fetch_all(
            self.query_builder.describe_user(self.get_current_user())
        )
        defaults = [row for row in rows if row.get("property") == "DEFAULT_WAREHOUSE"]
        if len(defaults) != 1:
            return None
        value = defaults[0].get("value")
        return None if value in (None, "", "null") else str(value)

    def _validate_and_set_warehouse(self) -> None:
        warehouse = self.config.warehouse
        logger.info("writer.warehouse.validating", warehouse=warehouse)
        if warehouse is None:
            warehouse = self.get_user_default_warehouse()

        if warehouse is None:
            raise UserError(
                'Snowflake user has no "DEFAULT_WAREHOUSE" specified. '
                'Set "warehouse" parameter.'
            )

        try:
            self._execute(self.query_builder.use_warehouse(warehouse))
        except UserError as e:
            if _OBJECT_DOES_NOT_EXIST.search(str(e)):
                raise UserError(f'Invalid warehouse "{warehouse}" specified') from e
            raise

    def _validate_and_set_schema(self) -> None:
        schema = self.config.schema_name
        logger.info("writer.schema.validating", schema=schema)
        try:
            self._execute(self.query_builder.use_schema(schema))
        except UserError as e:
            if _OBJECT_DOES_NOT_EXIST.search(str(e)):
                raise UserError(f'Invalid schema "{schema}" specified') from e
            raise

    def timestamp_type_mapping(self) -> str:
        """Session TIMESTAMP_TYPE_MAPPING, used to resolve plain TIMESTAMP columns."""
        rows = self.connection.fetch_all(self.query_builder.show_timestamp_mapping())
        for row in rows:
            if str(row.get("key", "")).upper() != "TIMESTAMP_TYPE_MAPPING":
                continue
            value = str(row.get("value", "")).upper()
            if value in TIMESTAMP_TYPE_MAPPINGS:
                return value
            logger.warning("writer.timestamp_mapping.unsupported", value=value)
        return TIMESTAMP_TYPE_MAPPING_NTZ

    def test_connection(self) -> None:
        self._execute(self.query_builder.current_date())

    # Names

    def generate_staging_name(self, table_name: str) -> str:
        """Unique staging table name; safe for concurrent loads of the same table."""
        suffix = f"_{uuid.uuid4().hex}"
        room = MAX_OBJECT_NAME_LENGTH - len(STAGING_TABLE_PREFIX) - len(suffix)
        return f"{STAGING_TABLE_PREFIX}{table_name[:room]}{suffix}"

    def generate_stage_name(self, run_id: Optional[str] = None) -> str:
        run_id = run_id if run_id is not None else self.run_id
        base = STAGE_NAME_PREFIX
        if run_id:
            base = f"{base}-{run_id.replace('.', '-')}"
        suffix = f"-{uuid.uuid4().hex}"
        return base[: MAX_OBJECT_NAME_LENGTH - len(suffix)].rstrip("-") + suffix

    # Table lifecycle

    def table_exists(self, table_name: str) -> bool:
        return bool(self.connection.fetch_all(self.query_builder.table_exists(table_name)))

    def drop_table(self, table_name: str) -> None:
        self._execute(self.query_builder.drop_table(table_name))

    def _cleanup(self, sql: str, suppress: bool, **log_fields: Any) -> None:
        # While another error propagates, a failed cleanup is logged instead of
        # replacing that error
        try:
            self._execute(sql)
        except UserError as e:
            if not suppress:
                raise
            logger.error("writer.cleanup.failed", error=str(e), **log_fields)
        else:
            logger.info("writer.cleanup.completed", **log_fields)

    @contextmanager
    def staging_table(self, table: TableConfig) -> Iterator[str]:
        """Yield a fresh staging table name and drop that table on exit."""
        staging_name = self.generate_staging_name(table.db_name)
        failed = False
        try:
            yield staging_name
        except BaseException:
            failed = True
            raise
        finally:
            self._cleanup(
                self.query_builder.drop_table(staging_name),
                suppress=failed,
                staging_table=staging_name,
            )

    def write_data(
        self, staging_name: str, table: TableConfig, adapter: StagingAdapter
    ) -> Tuple[str, int]:
        """
        COPY the staged files into ``staging_name`` through a temporary stage.

        Returns:
            The stage name and the number of COPY INTO statements executed
        """
        stage_name = self.generate_stage_name()
        self._execute(adapter.create_stage_statement(stage_name))
        failed = False
        executed = 0
        try:
            for statement in adapter.copy_statements(staging_name, stage_name, table.items):
                self._execute(statement)
                executed += 1
        except BaseException:
            failed = True
            raise
        finally:
            self._cleanup(
                self.query_builder.drop_stage(stage_name),
                suppress=failed,
                stage=stage_name,
            )
        logger.info(
            "writer.copy.completed",
            table=table.db_name,
            staging_table=staging_name,
            stage=stage_name,
            copy_statements=executed,
        )
        return stage_name, executed

    # Load protocols

    def write(self, table: TableConfig, adapter: StagingAdapter) -> LoadResult:
        """Load ``table`` with the mode its configuration asks for."""
        if table.load_mode is LoadMode.INCREMENTAL:
            return self.load_incremental(table, adapter)
        return self.load_full(table, adapter)

    def load_full(self, table: TableConfig, adapter: StagingAdapter) -> LoadResult:
        """Replace the target table's contents with the staged data."""
        execution_id = uuid.uuid4().hex
        start_time = time.perf_counter()
        primary_key = table.primary_key or None
        logger.info(
            "writer.load_full.started",
            table=table.db_name,
            table_id=table.table_id,
            execution_id=execution_id,
        )

        try:
            with self.staging_table(table) as staging_name:
                self._execute(
                    self.query_builder.create_table(staging_name, table.items, primary_key)
                )
                self._execute(
                    self.query_builder.create_table(table.db_name, table.items, primary_key)
                )
                stage_name, copies = self.write_data(staging_name, table, adapter)
                self._execute(self.query_builder.swap_tables(table.db_name, staging_name))
        except SnowflakeWriterError as exc:
            logger.error(
                "writer.load_full.failed",
                table=table.db_name,
                execution_id=execution_id,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                error=str(exc),
            )
            raise

        return self._completed(
            table, LoadMode.FULL, staging_name, stage_name, copies, execution_id, start_time
        )

    def load_incremental(self, table: TableConfig, adapter: StagingAdapter) -> LoadResult:
        """Merge the staged data into the target table by primary key."""
        execution_id = uuid.uuid4().hex
        start_time = time.perf_counter()
        primary_key = table.primary_key or None
        logger.info(
            "writer.load_incremental.started",
            table=table.db_name,
            table_id=table.table_id,
            execution_id=execution_id,
        )

        try:
            with self.staging_table(table) as staging_name:
                self.drop_table(staging_name)
                self._execute(
                    self.query_builder.create_table(
                        staging_name, table.items, primary_key, temporary=True
                    )
                )
                stage_name, copies = self.write_data(staging_name, table, adapter)

                if not self.table_exists(table.db_name):
                    self._execute(
                        self.query_builder.create_table(table.db_name, table.items, primary_key)
                    )

                self.validate_schema(table)
                self.upsert(table, staging_name)
        except SnowflakeWriterError as exc:
            logger.error(
                "writer.load_incremental.failed",
                table=table.db_name,
                execution_id=execution_id,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                error=str(exc),
            )
            raise

        return self._completed(
            table,
            LoadMode.INCREMENTAL,
            staging_name,
            stage_name,
            copies,
            execution_id,
            start_time,
        )

    def _completed(
        self,
        table: TableConfig,
        load_mode: LoadMode,
        staging_name: str,
        stage_name: str,
        copies: int,
        execution_id: str,
        start_time: float,
    ) -> LoadResult:
        result = LoadResult(
            table=table.db_name,
            load_mode=load_mode,
            staging_table=staging_name,
            stage_name=stage_name,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            execution_id=execution_id,
            copy_statements=copies,
        )
        logger.info(f"writer.load_{load_mode.value}.completed", **result.to_dict())
        return result

    def upsert(self, table: TableConfig, staging_name: str) -> None:
        """Apply staging rows to the target: update, delete matched, insert the rest."""
        if table.has_primary_key:
            self.add_primary_key_if_missing(table.db_name, table.primary_key)
            self.check_primary_key(table.primary_key, table.db_name)

            self._execute(
                self.query_builder.upsert_update(
                    table.db_name, staging_name, table.items, table.primary_key
                )
            )
            self._execute(
                self.query_builder.upsert_delete(table.db_name, staging_name, table.primary_key)
            )

        self._execute(self.query_builder.upsert_insert(table.db_name, staging_name, table.items))

    # Validation

    def _describe_columns(self, table_name: str) -> Dict[str, Dict[str, Any]]:
        rows = self.connection.fetch_all(self.query_builder.describe_table(table_name))
        return {
            str(row["name"]): row
            for row in rows
            if row.get("kind", "COLUMN") == "COLUMN"
        }

    @staticmethod
    def _observed_definition(table_name: str, column: str, row: Dict[str, Any]) -> TypeDefinition:
        try:
            return TypeDefinition.from_warehouse_metadata(row)
        except InvalidSpec as e:
            raise UserError(
                f'Cannot read definition of column "{column}" in table "{table_name}": {e}'
            ) from e

    def validate_schema(self, table: TableConfig) -> None:
        """
        Check the target table against the configured columns.

        Column names are compared case-insensitively; types with the
        compatibility rules of :meth:`TypeDefinition.is_compatible_with`.

        Raises:
            UserError: Listing every missing column, or every column whose
                type differs
        """
        actual = self._describe_columns(table.db_name)
        actual_by_lower = {name.lower(): row for name, row in actual.items()}
        declared = table.exported_items
        declared_lower = {column.db_name.lower() for column in declared}

        missing_in_mapping = [name for name in actual if name.lower() not in declared_lower]
        missing_in_table = [
            column.db_name for column in declared if column.db_name.lower() not in actual_by_lower
        ]
        errors: List[str] = []
        if missing_in_mapping:
            errors.append(
                "Some columns are missing in the mapping. "
                f"Missing columns: {','.join(missing_in_mapping)}"
            )
        if missing_in_table:
            errors.append(
                "Some columns are missing in DB table. "
                f"Missing columns: {','.join(missing_in_table)}"
            )
        if errors:
            raise UserError("\n".join(errors))

        timestamp_mapping = self.timestamp_type_mapping()
        mismatches: List[str] = []
        for column in declared:
            expected = TypeDefinition.from_column_spec(column)
            observed = self._observed_definition(
                table.db_name, column.db_name, actual_by_lower[column.db_name.lower()]
            )
            if not expected.is_compatible_with(observed, timestamp_mapping):
                mismatches.append(
                    f'- "{column.db_name}" mapping "{expected.sql_definition()}" '
                    f'actual "{observed.sql_definition()}"'
                )
        if mismatches:
            raise UserError(
                "Different mapping between incremental load and workspace for columns:\n"
                + "\n".join(mismatches)
            )

    def get_table_columns(self, table_name: str) -> List[str]:
        rows = self.connection.fetch_all(self.query_builder.show_columns(table_name))
        return [str(row["column_name"]) for row in rows]

    def get_table_constraints(
        self, table_name: str, constraint_type: str = "FOREIGN KEY"
    ) -> List[Dict[str, Any]]:
        return self.connection.fetch_all(
            self.query_builder.table_constraints(table_name, constraint_type)
        )

    def _key_columns(self, table_name: str, flag: str) -> List[str]:
        return [
            name for name, row in self._describe_columns(table_name).items() if row.get(flag) == "Y"
        ]

    def get_primary_key(self, table_name: str) -> List[str]:
        return self._key_columns(table_name, "primary key")

    def get_unique_keys(self, table_name: str) -> List[str]:
        return self._key_columns(table_name, "unique key")

    def check_primary_key(self, declared: Sequence[str], table_name: str) -> None:
        actual = self.get_primary_key(table_name)
        ensure_primary_key_matches(declared, actual)

    def add_primary_key_if_missing(self, table_name: str, primary_key: Sequence[str]) -> None:
        if self.get_primary_key(table_name):
            return
        self._execute(self.query_builder.add_primary_key(table_name, primary_key))

    # Foreign keys

    def is_same_type_columns(
        self, table_name: str, column: str, reference_table: str, reference_column: str
    ) -> bool:
        """Whether two columns share resolved type, length and nullability."""
        definitions = []
        for current_table, current_column in (
            (table_name, column),
            (reference_table, reference_column),
        ):
            rows = {
                name.lower(): row for name, row in self._describe_columns(current_table).items()
            }
            row = rows.get(current_column.lower())
            if row is None:
                raise UserError(
                    f'Column "{current_column}" in table "{current_table}" not found'
                )
            definitions.append(
                self._observed_definition(current_table, current_column, row)
            )

        source, reference = definitions
        timestamp_mapping = self.timestamp_type_mapping()
        return (
            source.resolved_base_type(timestamp_mapping)
            == reference.resolved_base_type(timestamp_mapping)
            and source.length == reference.length
            and source.nullable == reference.nullable
        )

    def add_unique_key_if_missing(self, table_name: str, column: str) -> None:
        if column.lower() in {name.lower() for name in self.get_unique_keys(table_name)}:
            return
        self._execute(self.query_builder.add_unique_key(table_name, column))

    def create_foreign_keys(self, table: TableConfig) -> None:
        """Add foreign keys for FK-annotated columns whose referenced table exists."""
        for item in table.exported_items:
            if not item.has_foreign_key:
                continue
            reference_table = str(item.foreign_key_table)
            reference_column = str(item.foreign_key_column)

            if not self.table_exists(reference_table):
                logger.info(
                    "writer.foreign_key.skipped",
                    table=table.db_name,
                    column=item.db_name,
                    reference_table=reference_table,
                    reason="reference_table_missing",
                )
                continue

            if not self.is_same_type_columns(
                table.db_name, item.db_name, reference_table, reference_column
            ):
                raise UserError(
                    f'Foreign key column "{item.db_name}" in table "{table.db_name}" has '
                    f'different type than column "{reference_column}" in table '
                    f'"{reference_table}". Columns must have the same type, length '
                    "and nullability."
                )

            self.add_unique_key_if_missing(reference_table, reference_column)
            self._execute(
                self.query_builder.add_foreign_key(
                    table.db_name, item.db_name, reference_table, reference_column
                )
            )
            logger.info(
                "writer.foreign_key.created",
                table=table.db_name,
                column=item.db_name,
                reference_table=reference_table,
                reference_column=reference_column,
            )

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "SnowflakeWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
