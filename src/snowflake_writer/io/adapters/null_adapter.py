"""Sentinel adapter for tables that have no staged data."""

from typing import List, Sequence

from snowflake_writer.config.table_config import ColumnConfig
from snowflake_writer.exceptions import ApplicationError


class NullAdapter:
    """Adapter whose every operation is a defect if reached."""

    def create_stage_statement(self, stage_name: str) -> str:
        raise ApplicationError('Method "create_stage_statement" not implemented')

    def copy_statements(
        self, table: str, stage_name: str, columns: Sequence[ColumnConfig]
    ) -> List[str]:
        raise ApplicationError('Method "copy_statements" not implemented')
