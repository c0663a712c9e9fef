"""
Snowflake loader: connection handling, statement construction and the
full/incremental load protocols.

Submodules are imported on first attribute access so that the adapters can
use ``sql_utils`` without pulling in the writer.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

_EXPORTS = {
    "LoadResult": ".models",
    "SnowflakeConnection": ".connection",
    "SnowflakeQueryBuilder": ".query_builder",
    "SnowflakeWriter": ".writer",
    "quote_identifier": ".sql_utils",
    "quote_literal": ".sql_utils",
}

__all__ = list(_EXPORTS)

if TYPE_CHECKING:  # pragma: no cover - imported only for typing
    from .connection import SnowflakeConnection
    from .models import LoadResult
    from .query_builder import SnowflakeQueryBuilder
    from .sql_utils import quote_identifier, quote_literal
    from .writer import SnowflakeWriter


def __getattr__(name: str) -> Any:
    if name in _EXPORTS:
        module = importlib.import_module(_EXPORTS[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module 'snowflake_writer.io.loader' has no attribute {name!r}")
