"""Column type definitions and Snowflake type reconciliation.

A TypeDefinition is built either from a configured column (desired state) or
from a ``DESC TABLE`` row (observed state). The two are compared with
:meth:`TypeDefinition.is_compatible_with`, which accounts for Snowflake's
implicit lengths and its TIMESTAMP alias.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

from snowflake_writer.config.table_config import ColumnConfig

TIMESTAMP_TYPE_MAPPING_LTZ = "TIMESTAMP_LTZ"
TIMESTAMP_TYPE_MAPPING_NTZ = "TIMESTAMP_NTZ"
TIMESTAMP_TYPE_MAPPINGS = (TIMESTAMP_TYPE_MAPPING_LTZ, TIMESTAMP_TYPE_MAPPING_NTZ)

NUMBER_TYPES = frozenset(
    {"INT", "INTEGER", "BIGINT", "SMALLINT", "TINYINT", "BYTEINT", "NUMBER", "DECIMAL", "NUMERIC"}
)
FLOAT_TYPES = frozenset({"FLOAT", "FLOAT4", "FLOAT8", "DOUBLE", "DOUBLE PRECISION", "REAL"})
TEXT_TYPES = frozenset({"VARCHAR", "STRING", "TEXT"})
CHAR_TYPES = frozenset({"CHAR", "CHARACTER"})
TIME_TYPES = frozenset(
    {"TIME", "DATETIME", "TIMESTAMP", "TIMESTAMP_NTZ", "TIMESTAMP_LTZ", "TIMESTAMP_TZ"}
)
BINARY_TYPES = frozenset({"BINARY", "VARBINARY"})
SELF_MAPPED_TYPES = frozenset(
    {
        "BOOLEAN",
        "DATE",
        "TIME",
        "TIMESTAMP_NTZ",
        "TIMESTAMP_LTZ",
        "TIMESTAMP_TZ",
        "VARIANT",
        "ARRAY",
        "OBJECT",
    }
)

REQUIRED_METADATA = ("kind", "type", "null?", "default")

_SIZED_TYPE_PATTERN = re.compile(r"^(\w+)\(([0-9,]+)\)$", re.IGNORECASE | re.UNICODE)
_EDGE_QUOTE_PATTERN = re.compile(r"(^'|'$)")


class InvalidSpec(ValueError):
    """Raised when a column definition or catalog row cannot be parsed."""


class InvalidArgument(ValueError):
    """Raised when an operation receives an unsupported argument."""


def strip_default_value_quoting(text: str) -> str:
    """Undo Snowflake's quoting of string defaults reported by DESC TABLE.

    >>> strip_default_value_quoting("'it''s'")
    "it's"
    """
    return _EDGE_QUOTE_PATTERN.sub("", text).replace("''", "'")


@dataclass(frozen=True)
class TypeDefinition:
    """One column's type, length, nullability and default."""

    type: str
    length: Optional[str] = None
    nullable: bool = False
    default: Optional[str] = None

    @classmethod
    def from_column_spec(
        cls, spec: Union[ColumnConfig, Mapping[str, Any]]
    ) -> "TypeDefinition":
        """Build the desired definition of a configured column.

        The declared size is taken as-is; Snowflake's implicit lengths are only
        considered when comparing definitions.
        """
        if isinstance(spec, ColumnConfig):
            return cls(
                type=spec.type,
                length=spec.size,
                nullable=spec.nullable,
                default=spec.default,
            )

        if "type" not in spec:
            raise InvalidSpec("Missing column definition: type")

        size = spec.get("size")
        length = None if size is None or str(size).strip() == "" else str(size)
        default = spec.get("default")
        return cls(
            type=str(spec["type"]),
            length=length,
            nullable=bool(spec.get("nullable", False)),
            default=None if default is None else str(default),
        )

    @classmethod
    def from_warehouse_metadata(cls, meta: Mapping[str, Any]) -> "TypeDefinition":
        """Build the observed definition from one ``DESC TABLE`` row."""
        missing: List[str] = [key for key in REQUIRED_METADATA if key not in meta]
        if missing:
            raise InvalidSpec(f"Missing metadata: {', '.join(missing)}")

        if meta["kind"] != "COLUMN":
            raise InvalidSpec("Metadata does not contain column definition")

        column_type = str(meta["type"])
        length: Optional[str] = None
        match = _SIZED_TYPE_PATTERN.match(column_type)
        if match:
            column_type, length = match.group(1), match.group(2)

        default = meta["default"]
        return cls(
            type=column_type,
            length=length,
            nullable=meta["null?"] == "Y",
            default=None if default is None else strip_default_value_quoting(str(default)),
        )

    def default_length(self) -> Optional[str]:
        """Length Snowflake reports for this type when none was declared."""
        type_name = self.type.upper()
        if type_name in NUMBER_TYPES:
            return "38,0"
        if type_name in TEXT_TYPES:
            return "16777216"
        if type_name in CHAR_TYPES:
            return "1"
        if type_name in TIME_TYPES:
            return "9"
        if type_name in BINARY_TYPES:
            return "8388608"
        return None

    def resolved_base_type(self, timestamp_mapping: str) -> str:
        """Canonical Snowflake type this definition is stored as."""
        if timestamp_mapping not in TIMESTAMP_TYPE_MAPPINGS:
            raise InvalidArgument(
                f'Invalid Snowflake timestamp type mapping provided: "{timestamp_mapping}"'
            )

        type_name = self.type.upper()
        if type_name in NUMBER_TYPES:
            return "NUMBER"
        if type_name in FLOAT_TYPES:
            return "FLOAT"
        if type_name in SELF_MAPPED_TYPES:
            return type_name
        if type_name == "DATETIME":
            return TIMESTAMP_TYPE_MAPPING_NTZ
        if type_name == "TIMESTAMP":
            return timestamp_mapping
        if type_name in BINARY_TYPES:
            return "BINARY"
        return "VARCHAR"

    def sql_definition(self) -> str:
        """Human-readable definition used in validation messages."""
        definition = self.type.upper()
        if self.length is not None:
            definition += f"({self.length})"
        if not self.nullable:
            definition += " NOT NULL"
        if self.default is not None:
            definition += f" DEFAULT '{self.default}'"
        return definition

    def is_compatible_with(
        self, observed: "TypeDefinition", timestamp_mapping: str
    ) -> bool:
        """Whether ``observed`` (from the warehouse) satisfies this declared definition."""
        if self.resolved_base_type(timestamp_mapping) != observed.resolved_base_type(
            timestamp_mapping
        ):
            return False
        if self.nullable != observed.nullable:
            return False

        observed_length = _normalise_length(observed.length)
        if self.length is None:
            return observed_length == _normalise_length(self.default_length())
        return _normalise_length(self.length) == observed_length


def _normalise_length(length: Optional[str]) -> Optional[str]:
    if length is None:
        return None
    return re.sub(r"\s+", "", str(length))


__all__ = [
    "TIMESTAMP_TYPE_MAPPING_LTZ",
    "TIMESTAMP_TYPE_MAPPING_NTZ",
    "InvalidArgument",
    "InvalidSpec",
    "TypeDefinition",
    "strip_default_value_quoting",
]
