"""
Round-trip tests against a live Snowflake account.

Opt-in: pass --run-integration (or RUN_INTEGRATION_TESTS=1) and provide
SNOWFLAKE_TEST_HOST, SNOWFLAKE_TEST_USER, SNOWFLAKE_TEST_PASSWORD,
SNOWFLAKE_TEST_DATABASE, SNOWFLAKE_TEST_SCHEMA and SNOWFLAKE_TEST_WAREHOUSE
(``.env.test`` is loaded by conftest). Staged files are not needed: these
tests exercise DDL, catalog introspection and the merge statements directly.
"""

import os
import uuid

import pytest

from snowflake_writer.config.table_config import DatabaseConfig, TableConfig
from snowflake_writer.infrastructure.schema import TypeDefinition
from snowflake_writer.io.loader.writer import SnowflakeWriter

pytestmark = pytest.mark.integration

REQUIRED_ENV = (
    "SNOWFLAKE_TEST_HOST",
    "SNOWFLAKE_TEST_USER",
    "SNOWFLAKE_TEST_PASSWORD",
    "SNOWFLAKE_TEST_DATABASE",
    "SNOWFLAKE_TEST_SCHEMA",
)


@pytest.fixture(scope="module")
def writer():
    missing = [name for name in REQUIRED_ENV if not os.getenv(name)]
    if missing:
        pytest.skip(f"Snowflake credentials not configured: {', '.join(missing)}")

    config = DatabaseConfig(
        host=os.environ["SNOWFLAKE_TEST_HOST"],
        user=os.environ["SNOWFLAKE_TEST_USER"],
        password=os.environ["SNOWFLAKE_TEST_PASSWORD"],
        database=os.environ["SNOWFLAKE_TEST_DATABASE"],
        schema=os.environ["SNOWFLAKE_TEST_SCHEMA"],
        warehouse=os.getenv("SNOWFLAKE_TEST_WAREHOUSE"),
    )
    with SnowflakeWriter(config) as instance:
        yield instance


@pytest.fixture
def table():
    name = f"it_orders_{uuid.uuid4().hex[:8]}"
    return TableConfig(
        tableId=f"in.c-it.{name}",
        dbName=name,
        incremental=True,
        primaryKey=["id"],
        items=[
            {"name": "id", "dbName": "id", "type": "int"},
            {"name": "name", "dbName": "name", "type": "varchar", "size": "255", "nullable": True},
            {"name": "created", "dbName": "created", "type": "timestamp", "nullable": True},
        ],
    )


def _run(writer, sql):
    writer.connection.execute(sql)


def test_created_table_matches_declared_schema(writer, table):
    builder = writer.query_builder
    _run(writer, builder.create_table(table.db_name, table.items, table.primary_key))
    try:
        assert writer.table_exists(table.db_name)
        writer.validate_schema(table)
        writer.check_primary_key(table.primary_key, table.db_name)

        mapping = writer.timestamp_type_mapping()
        row = next(
            row
            for row in writer.connection.fetch_all(builder.describe_table(table.db_name))
            if row["name"] == "created"
        )
        observed = TypeDefinition.from_warehouse_metadata(row)
        assert observed.resolved_base_type(mapping) == mapping
    finally:
        writer.drop_table(table.db_name)


def _count(writer, name):
    return len(writer.connection.fetch_all(f"SELECT * FROM {writer.query_builder.qualified(name)}"))


def test_swap_is_symmetric(writer, table):
    builder = writer.query_builder
    other = writer.generate_staging_name(table.db_name)
    _run(writer, builder.create_table(table.db_name, table.items, table.primary_key))
    _run(writer, builder.create_table(other, table.items, table.primary_key))
    try:
        _run(writer, f"INSERT INTO {builder.qualified(other)} (\"id\", \"name\") VALUES (1, 'a')")

        _run(writer, builder.swap_tables(table.db_name, other))
        assert (_count(writer, table.db_name), _count(writer, other)) == (1, 0)

        _run(writer, builder.swap_tables(table.db_name, other))
        assert (_count(writer, table.db_name), _count(writer, other)) == (0, 1)
        restored = writer.connection.fetch_all(f'SELECT "id", "name" FROM {builder.qualified(other)}')
        assert [(row["id"], row["name"]) for row in restored] == [(1, "a")]
    finally:
        writer.drop_table(other)
        writer.drop_table(table.db_name)


def test_catalog_introspection(writer, table):
    _run(writer, writer.query_builder.create_table(table.db_name, table.items, table.primary_key))
    try:
        assert sorted(writer.get_table_columns(table.db_name)) == ["created", "id", "name"]
        assert writer.get_primary_key(table.db_name) == ["id"]
        assert writer.get_table_constraints(table.db_name) == []
        primary_keys = writer.get_table_constraints(table.db_name, "PRIMARY KEY")
        assert len(primary_keys) == 1
    finally:
        writer.drop_table(table.db_name)


def test_upsert_updates_matches_and_inserts_new_rows(writer, table):
    builder = writer.query_builder
    staging = writer.generate_staging_name(table.db_name)
    _run(writer, builder.create_table(table.db_name, table.items, table.primary_key))
    _run(writer, builder.create_table(staging, table.items, temporary=True))
    try:
        _run(writer, f"INSERT INTO {builder.qualified(table.db_name)} (\"id\", \"name\") VALUES (1, 'old')")
        _run(
            writer,
            f"INSERT INTO {builder.qualified(staging)} (\"id\", \"name\") VALUES (1, 'new'), (2, 'added')",
        )

        writer.upsert(table, staging)

        rows = writer.connection.fetch_all(
            f"SELECT \"id\", \"name\" FROM {builder.qualified(table.db_name)} ORDER BY \"id\""
        )
        assert [(row["id"], row["name"]) for row in rows] == [(1, "new"), (2, "added")]
    finally:
        writer.drop_table(staging)
        writer.drop_table(table.db_name)
