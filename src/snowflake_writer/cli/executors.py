"""
Action executors for the writer CLI.

``Application`` reads ``config.yml`` and the table manifests from the data
directory, builds one staging adapter per table and drives a single
``SnowflakeWriter`` through every exported table before provisioning
foreign keys.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from snowflake_writer.config.settings import Settings, get_settings
from snowflake_writer.config.table_config import (
    TableConfig,
    WriterConfig,
    load_table_manifest,
    load_writer_config,
)
from snowflake_writer.io.adapters import StagingAdapter, adapter_from_manifest
from snowflake_writer.io.loader.writer import SnowflakeWriter
from snowflake_writer.utils.logging import bind_context

CONFIG_FILE_NAME = "config.yml"


class Application:
    """Runs one writer action against the data directory."""

    def __init__(
        self,
        data_dir: Union[str, Path],
        config: Optional[WriterConfig] = None,
        settings: Optional[Settings] = None,
        writer_factory: Optional[Callable[..., SnowflakeWriter]] = None,
        adapter_factory: Optional[Callable[[Mapping[str, Any]], StagingAdapter]] = None,
    ):
        self.data_dir = Path(data_dir)
        self.config = config or load_writer_config(self.data_dir / CONFIG_FILE_NAME)
        self.settings = settings or get_settings()
        self.parameters = self.config.parameters
        self._writer_factory = writer_factory or SnowflakeWriter
        self._adapter_factory = adapter_factory or self._default_adapter
        self._writer: Optional[SnowflakeWriter] = None
        self.logger = bind_context(
            component="application",
            run_id=self.parameters.db.run_id or self.settings.run_id,
        )

    def _default_adapter(self, manifest: Mapping[str, Any]) -> StagingAdapter:
        return adapter_from_manifest(manifest, chunk_size=self.settings.copy_chunk_size)

    @property
    def writer(self) -> SnowflakeWriter:
        if self._writer is None:
            self._writer = self._writer_factory(self.parameters.db, settings=self.settings)
        return self._writer

    def execute(self, action: Optional[str] = None) -> Dict[str, Any]:
        """Run ``action`` (defaults to the action named in config.yml)."""
        action = action or self.config.action
        try:
            if action == "testConnection":
                return self.test_connection()
            return self.run()
        finally:
            self.close()

    def test_connection(self) -> Dict[str, Any]:
        self.writer.test_connection()
        self.logger.info("application.test_connection.succeeded")
        return {"status": "success"}

    def run(self) -> Dict[str, Any]:
        loaded: List[TableConfig] = []
        results: List[Dict[str, Any]] = []
        for table in self.parameters.exported_tables:
            manifest = load_table_manifest(self.data_dir, table.table_id)
            prepared = self.prepare_table(table, manifest)
            if not prepared.exported_items:
                self.logger.info(
                    "application.table.skipped",
                    table_id=table.table_id,
                    reason="no_columns_to_load",
                )
                continue
            adapter = self._adapter_factory(manifest)
            result = self.writer.write(prepared, adapter)
            results.append(result.to_dict())
            loaded.append(prepared)

        for table in loaded:
            self.writer.create_foreign_keys(table)

        self.logger.info("application.run.completed", tables=len(loaded))
        return {
            "status": "success",
            "message": "Writer finished successfully",
            "tables": results,
        }

    def prepare_table(self, table: TableConfig, manifest: Mapping[str, Any]) -> TableConfig:
        """Align configured items with the header order recorded in the manifest."""
        header = manifest.get("columns")
        if not header:
            return table
        return table.reordered([str(column) for column in header])

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None
