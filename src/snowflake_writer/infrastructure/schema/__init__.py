"""Column type definitions shared by the query builder and the writer."""

from .definition import (
    TIMESTAMP_TYPE_MAPPING_LTZ,
    TIMESTAMP_TYPE_MAPPING_NTZ,
    InvalidArgument,
    InvalidSpec,
    TypeDefinition,
    strip_default_value_quoting,
)

__all__ = [
    "TIMESTAMP_TYPE_MAPPING_LTZ",
    "TIMESTAMP_TYPE_MAPPING_NTZ",
    "InvalidArgument",
    "InvalidSpec",
    "TypeDefinition",
    "strip_default_value_quoting",
]
