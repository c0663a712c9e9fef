"""Unit tests for TypeDefinition parsing and compatibility rules."""

import pytest

from snowflake_writer.config.table_config import ColumnConfig
from snowflake_writer.infrastructure.schema import (
    TIMESTAMP_TYPE_MAPPING_LTZ,
    TIMESTAMP_TYPE_MAPPING_NTZ,
    InvalidArgument,
    InvalidSpec,
    TypeDefinition,
    strip_default_value_quoting,
)


def _meta(**overrides):
    meta = {"kind": "COLUMN", "type": "VARCHAR(255)", "null?": "Y", "default": None}
    meta.update(overrides)
    return meta


@pytest.mark.unit
class TestFromColumnSpec:
    def test_mapping_defaults(self):
        definition = TypeDefinition.from_column_spec({"type": "int"})

        assert definition == TypeDefinition(type="int", length=None, nullable=False, default=None)

    def test_mapping_keeps_raw_size(self):
        definition = TypeDefinition.from_column_spec(
            {"type": "number", "size": "12,2", "nullable": True, "default": 0}
        )

        assert definition.length == "12,2"
        assert definition.nullable is True
        assert definition.default == "0"

    def test_empty_size_is_absent(self):
        assert TypeDefinition.from_column_spec({"type": "varchar", "size": ""}).length is None

    def test_missing_type_rejected(self):
        with pytest.raises(InvalidSpec, match="Missing column definition: type"):
            TypeDefinition.from_column_spec({"size": "10"})

    def test_column_config(self):
        column = ColumnConfig(name="c", db_name="c", type="varchar", size=64, nullable=True)

        definition = TypeDefinition.from_column_spec(column)

        assert definition == TypeDefinition(type="varchar", length="64", nullable=True)


@pytest.mark.unit
class TestFromWarehouseMetadata:
    def test_parses_length(self):
        definition = TypeDefinition.from_warehouse_metadata(_meta(type="VARCHAR(255)"))

        assert definition.type == "VARCHAR"
        assert definition.length == "255"
        assert definition.nullable is True

    def test_parses_precision_and_scale(self):
        definition = TypeDefinition.from_warehouse_metadata(_meta(type="NUMBER(38,0)", **{"null?": "N"}))

        assert definition.type == "NUMBER"
        assert definition.length == "38,0"
        assert definition.nullable is False

    def test_type_without_length(self):
        definition = TypeDefinition.from_warehouse_metadata(_meta(type="BOOLEAN"))

        assert definition.type == "BOOLEAN"
        assert definition.length is None

    def test_default_unquoted(self):
        definition = TypeDefinition.from_warehouse_metadata(_meta(default="'it''s'"))

        assert definition.default == "it's"

    def test_missing_keys_listed_in_order(self):
        with pytest.raises(InvalidSpec, match=r"Missing metadata: kind, null\?"):
            TypeDefinition.from_warehouse_metadata({"type": "INT", "default": None})

    def test_non_column_rejected(self):
        with pytest.raises(InvalidSpec, match="Metadata does not contain column definition"):
            TypeDefinition.from_warehouse_metadata(_meta(kind="VIRTUAL_COLUMN"))


@pytest.mark.unit
def test_strip_default_value_quoting():
    assert strip_default_value_quoting("'abc'") == "abc"
    assert strip_default_value_quoting("42") == "42"


@pytest.mark.unit
@pytest.mark.parametrize(
    "type_name, expected",
    [
        ("INT", "38,0"),
        ("decimal", "38,0"),
        ("VARCHAR", "16777216"),
        ("CHAR", "1"),
        ("TIMESTAMP_LTZ", "9"),
        ("VARBINARY", "8388608"),
        ("BOOLEAN", None),
    ],
)
def test_default_length(type_name, expected):
    assert TypeDefinition(type=type_name).default_length() == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "type_name, mapping, expected",
    [
        ("bigint", TIMESTAMP_TYPE_MAPPING_NTZ, "NUMBER"),
        ("DOUBLE PRECISION", TIMESTAMP_TYPE_MAPPING_NTZ, "FLOAT"),
        ("date", TIMESTAMP_TYPE_MAPPING_NTZ, "DATE"),
        ("DATETIME", TIMESTAMP_TYPE_MAPPING_LTZ, "TIMESTAMP_NTZ"),
        ("TIMESTAMP", TIMESTAMP_TYPE_MAPPING_LTZ, "TIMESTAMP_LTZ"),
        ("TIMESTAMP", TIMESTAMP_TYPE_MAPPING_NTZ, "TIMESTAMP_NTZ"),
        ("TIMESTAMP_TZ", TIMESTAMP_TYPE_MAPPING_NTZ, "TIMESTAMP_TZ"),
        ("varbinary", TIMESTAMP_TYPE_MAPPING_NTZ, "BINARY"),
        ("string", TIMESTAMP_TYPE_MAPPING_NTZ, "VARCHAR"),
        ("geography", TIMESTAMP_TYPE_MAPPING_NTZ, "VARCHAR"),
    ],
)
def test_resolved_base_type(type_name, mapping, expected):
    assert TypeDefinition(type=type_name).resolved_base_type(mapping) == expected


@pytest.mark.unit
def test_resolved_base_type_rejects_unknown_mapping():
    with pytest.raises(InvalidArgument, match='"TIMESTAMP_TZ"'):
        TypeDefinition(type="int").resolved_base_type("TIMESTAMP_TZ")


@pytest.mark.unit
class TestSqlDefinition:
    def test_full(self):
        definition = TypeDefinition(type="varchar", length="10", nullable=False, default="x")

        assert definition.sql_definition() == "VARCHAR(10) NOT NULL DEFAULT 'x'"

    def test_nullable_without_length(self):
        assert TypeDefinition(type="date", nullable=True).sql_definition() == "DATE"


@pytest.mark.unit
class TestCompatibility:
    def test_declared_without_length_matches_default_length(self):
        declared = TypeDefinition(type="int")
        observed = TypeDefinition(type="NUMBER", length="38,0")

        assert declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_NTZ)

    def test_declared_without_length_rejects_other_length(self):
        declared = TypeDefinition(type="varchar")
        observed = TypeDefinition(type="VARCHAR", length="255")

        assert not declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_NTZ)

    def test_length_whitespace_ignored(self):
        declared = TypeDefinition(type="number", length="12, 2")
        observed = TypeDefinition(type="NUMBER", length="12,2")

        assert declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_NTZ)

    def test_nullability_must_match(self):
        declared = TypeDefinition(type="varchar", length="10", nullable=True)
        observed = TypeDefinition(type="VARCHAR", length="10", nullable=False)

        assert not declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_NTZ)

    def test_timestamp_follows_session_mapping(self):
        declared = TypeDefinition(type="timestamp")
        observed = TypeDefinition(type="TIMESTAMP_LTZ", length="9")

        assert declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_LTZ)
        assert not declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_NTZ)

    def test_different_base_type(self):
        declared = TypeDefinition(type="int")
        observed = TypeDefinition(type="VARCHAR", length="38,0")

        assert not declared.is_compatible_with(observed, TIMESTAMP_TYPE_MAPPING_NTZ)
