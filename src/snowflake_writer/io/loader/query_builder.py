"""
Snowflake statement builders.

Every statement the writer executes is composed here. Snowflake's DDL and
COPY surface does not accept bound parameters for identifiers, so all
identifiers and literals go through the connection's quoting functions.

Example:
    >>> from snowflake_writer.io.loader import sql_utils
    >>> builder = SnowflakeQueryBuilder(sql_utils, schema="RAW", database="ANALYTICS")
    >>> builder.drop_table("orders")
    'DROP TABLE IF EXISTS "RAW"."orders"'
"""

from typing import Optional, Protocol, Sequence

from snowflake_writer.config.table_config import ColumnConfig

TYPES_WITH_SIZE = frozenset(
    {"number", "decimal", "numeric", "char", "character", "varchar", "string", "text", "binary"}
)


class Quoting(Protocol):
    """Identifier and literal quoting rules of a connection."""

    def quote_identifier(self, name: str) -> str: ...
    def quote_literal(self, value: str) -> str: ...


class SnowflakeQueryBuilder:
    """Pure construction of the DDL, DML and introspection statements."""

    def __init__(self, quoting: Quoting, schema: str, database: str):
        """
        Initialize the builder.

        Args:
            quoting: Object providing quote_identifier/quote_literal
                (a SnowflakeConnection or the sql_utils module)
            schema: Target schema
            database: Target database, used for existence checks
        """
        self.quoting = quoting
        self.schema = schema
        self.database = database

    def _ident(self, name: str) -> str:
        return self.quoting.quote_identifier(name)

    def _literal(self, value: str) -> str:
        return self.quoting.quote_literal(value)

    def qualified(self, table: str) -> str:
        """Table name qualified with the target schema."""
        return f"{self._ident(self.schema)}.{self._ident(table)}"

    # DDL

    def column_definition(self, column: ColumnConfig) -> str:
        type_name = column.type.upper()
        parts = [self._ident(column.db_name)]
        if column.has_size and column.type.lower() in TYPES_WITH_SIZE:
            parts.append(f"{type_name}({column.size})")
        else:
            parts.append(type_name)
        parts.append("NULL" if column.nullable else "NOT NULL")
        if column.has_default and type_name != "TEXT":
            parts.append(f"DEFAULT CAST({self._literal(column.default)} AS {type_name})")
        return " ".join(parts)

    def primary_key_definition(self, primary_key: Sequence[str]) -> str:
        return f"PRIMARY KEY({', '.join(self._ident(column) for column in primary_key)})"

    def create_table(
        self,
        name: str,
        columns: Sequence[ColumnConfig],
        primary_key: Optional[Sequence[str]] = None,
        temporary: bool = False,
    ) -> str:
        """
        Build CREATE TABLE; permanent tables are created only if missing.

        Ignored columns are left out of the definition.
        """
        definitions = [self.column_definition(column) for column in columns if not column.is_ignored]
        if primary_key:
            definitions.append(self.primary_key_definition(primary_key))
        return (
            f"CREATE {'TEMPORARY ' if temporary else ''}TABLE"
            f"{'' if temporary else ' IF NOT EXISTS'} {self._ident(name)} "
            f"({', '.join(definitions)})"
        )

    def drop_table(self, name: str) -> str:
        return f"DROP TABLE IF EXISTS {self.qualified(name)}"

    def swap_tables(self, table: str, other: str) -> str:
        return f"ALTER TABLE {self.qualified(table)} SWAP WITH {self.qualified(other)}"

    def drop_stage(self, stage_name: str) -> str:
        return f"DROP STAGE IF EXISTS {self._ident(stage_name)}"

    # Introspection

    def show_columns(self, table: str) -> str:
        return f"SHOW COLUMNS IN {self.qualified(table)}"

    def describe_table(self, table: str) -> str:
        return f"DESCRIBE TABLE {self.qualified(table)}"

    def table_exists(self, table: str) -> str:
        return (
            "SELECT * FROM INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_NAME = {self._literal(table)} "
            f"AND TABLE_SCHEMA = {self._literal(self.schema)} "
            f"AND TABLE_CATALOG = {self._literal(self.database)}"
        )

    def table_constraints(self, table: str, constraint_type: str = "FOREIGN KEY") -> str:
        return (
            "SELECT * FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS "
            f"WHERE TABLE_SCHEMA = {self._literal(self.schema)} "
            f"AND TABLE_NAME = {self._literal(table)} "
            f"AND CONSTRAINT_TYPE = {self._literal(constraint_type)}"
        )

    # Incremental merge: update, then delete matched rows from staging, then insert

    def _join_clause(self, target: str, staging: str, primary_key: Sequence[str]) -> str:
        target_table = self.qualified(target)
        staging_table = self.qualified(staging)
        return " AND ".join(
            f"{target_table}.{self._ident(column)} = {staging_table}.{self._ident(column)}"
            for column in primary_key
        )

    def upsert_update(
        self,
        target: str,
        staging: str,
        columns: Sequence[ColumnConfig],
        primary_key: Sequence[str],
    ) -> str:
        staging_table = self.qualified(staging)
        values = ",".join(
            f"{self._ident(column.db_name)} = {staging_table}.{self._ident(column.db_name)}"
            for column in columns
            if not column.is_ignored
        )
        return (
            f"UPDATE {self.qualified(target)} SET {values} FROM {staging_table} "
            f"WHERE {self._join_clause(target, staging, primary_key)};"
        )

    def upsert_delete(self, target: str, staging: str, primary_key: Sequence[str]) -> str:
        return (
            f"DELETE FROM {self.qualified(staging)} USING {self.qualified(target)} "
            f"WHERE {self._join_clause(target, staging, primary_key)}"
        )

    def upsert_insert(
        self, target: str, staging: str, columns: Sequence[ColumnConfig]
    ) -> str:
        column_list = ",".join(
            self._ident(column.db_name) for column in columns if not column.is_ignored
        )
        return (
            f"INSERT INTO {self.qualified(target)} ({column_list}) "
            f"SELECT * FROM {self.qualified(staging)}"
        )

    # Keys

    def add_primary_key(self, table: str, primary_key: Sequence[str]) -> str:
        return f"ALTER TABLE {self.qualified(table)} ADD {self.primary_key_definition(primary_key)}"

    def add_unique_key(self, table: str, column: str) -> str:
        return f"ALTER TABLE {self.qualified(table)} ADD UNIQUE ({self._ident(column)})"

    def add_foreign_key(
        self, table: str, column: str, foreign_key_table: str, foreign_key_column: str
    ) -> str:
        constraint = self._ident(f"FK_{foreign_key_table}_{foreign_key_column}")
        return (
            f"ALTER TABLE {self.qualified(table)} ADD CONSTRAINT {constraint} "
            f"FOREIGN KEY ({self._ident(column)}) "
            f"REFERENCES {self.qualified(foreign_key_table)}({self._ident(foreign_key_column)})"
        )

    # Session

    def statement_timeout(self, seconds: int) -> str:
        return f"ALTER SESSION SET STATEMENT_TIMEOUT_IN_SECONDS = {int(seconds)}"

    def use_warehouse(self, warehouse: str) -> str:
        return f"USE WAREHOUSE {self._ident(warehouse)}"

    def use_schema(self, schema: str) -> str:
        return f"USE SCHEMA {self._ident(schema)}"

    def current_user(self) -> str:
        return "SELECT CURRENT_USER"

    def describe_user(self, user: str) -> str:
        return f"DESC USER {self._ident(user)}"

    def show_timestamp_mapping(self) -> str:
        return "SHOW PARAMETERS LIKE 'TIMESTAMP_TYPE_MAPPING' IN SESSION"

    def current_date(self) -> str:
        return "SELECT current_date"

