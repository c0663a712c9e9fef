"""
Staging adapter contract and the pieces shared by every storage backend.

A staging adapter turns a staging manifest (the list of uploaded CSV files
plus the credentials to read them) into the two statements Snowflake needs
for a bulk load: an external stage definition and one or more COPY INTO
statements reading from that stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Protocol, Sequence, Tuple

from snowflake_writer.config.table_config import ColumnConfig
from snowflake_writer.io.loader.sql_utils import quote_identifier, quote_literal

# Snowflake rejects COPY INTO statements listing more than 1000 files
SLICED_FILES_CHUNK_SIZE = 1000

CSV_DELIMITER = ","
CSV_ENCLOSURE = '"'
CSV_ESCAPE = "\\"


@dataclass(frozen=True)
class StagingManifest:
    """Resolved description of the staged files for one table."""

    is_sliced: bool
    file_locations: Tuple[str, ...]
    credentials: Mapping[str, str] = field(default_factory=dict, repr=False)


class StagingAdapter(Protocol):
    """Protocol for turning a staged dataset into Snowflake load statements."""

    def create_stage_statement(self, stage_name: str) -> str: ...

    def copy_statements(
        self, table: str, stage_name: str, columns: Sequence[ColumnConfig]
    ) -> List[str]: ...


def csv_format_options(is_sliced: bool) -> str:
    """FILE_FORMAT options for the stage; single files carry a header row."""
    options = [
        "FIELD_DELIMITER = " + quote_literal(CSV_DELIMITER),
        "FIELD_OPTIONALLY_ENCLOSED_BY = " + quote_literal(CSV_ENCLOSURE),
        "ESCAPE_UNENCLOSED_FIELD = " + quote_literal(CSV_ESCAPE),
    ]
    if not is_sliced:
        options.append("SKIP_HEADER = 1")
    return "TYPE=CSV " + " ".join(options)


def quoted_column_names(columns: Sequence[ColumnConfig]) -> List[str]:
    """Quoted target column names, ignored columns left out."""
    return [quote_identifier(column.db_name) for column in columns if not column.is_ignored]


def column_transformations(columns: Sequence[ColumnConfig]) -> List[str]:
    """
    Positional select list for COPY INTO.

    ``$n`` is the column's position in the file, so an ignored column keeps
    its slot and is simply not selected. Nullable columns load empty strings
    as NULL.
    """
    transformations: List[str] = []
    for position, column in enumerate(columns, start=1):
        if column.is_ignored:
            continue
        if column.nullable:
            transformations.append(f"IFF(t.${position} = '', null, t.${position})")
        else:
            transformations.append(f"t.${position}")
    return transformations


def build_copy_statement(
    table: str,
    stage_name: str,
    columns: Sequence[ColumnConfig],
    files: Sequence[str],
) -> str:
    """One COPY INTO statement reading ``files`` (paths relative to the stage)."""
    stage_reference = quote_literal(f"@{quote_identifier(stage_name)}/")
    return (
        f"COPY INTO {quote_identifier(table)}({', '.join(quoted_column_names(columns))}) "
        f"FROM (SELECT {', '.join(column_transformations(columns))} FROM {stage_reference} t) "
        f"FILES = ({','.join(quote_literal(path) for path in files)})"
    )


def chunked(items: Sequence[str], size: int) -> List[Sequence[str]]:
    if size < 1:
        raise ValueError("Chunk size must be positive")
    return [items[start : start + size] for start in range(0, len(items), size)]
