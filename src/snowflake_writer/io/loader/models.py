from dataclasses import dataclass

from snowflake_writer.config.table_config import LoadMode
from snowflake_writer.exceptions import ApplicationError, UserError

__all__ = ["ApplicationError", "LoadMode", "LoadResult", "UserError"]


@dataclass
class LoadResult:
    """Structured response for SnowflakeWriter load operations."""

    table: str
    load_mode: LoadMode
    staging_table: str
    stage_name: str
    duration_ms: float
    execution_id: str
    copy_statements: int = 0

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "load_mode": self.load_mode.value,
            "staging_table": self.staging_table,
            "stage_name": self.stage_name,
            "copy_statements": self.copy_statements,
            "duration_ms": round(self.duration_ms, 3),
            "execution_id": self.execution_id,
        }
