"""
Object-store staging adapter with S3 and Azure Blob Storage backends.

Backends differ only in how the manifest is read, in the stage URL scheme
and in the credentials clause; statement generation is shared by
:class:`ObjectStoreAdapter`.

Manifest blocks (from ``in/tables/<tableId>.csv.manifest``)::

    "s3":  {"isSliced": true, "region": "us-east-1", "bucket": "kbc-files",
            "key": "exp-1/123.csv.gzmanifest",
            "credentials": {"access_key_id": "...", "secret_access_key": "...",
                            "session_token": "..."}}

    "abs": {"is_sliced": true, "region": "westeurope", "container": "exp-1",
            "name": "123.csvmanifest",
            "credentials": {"sas_connection_string":
                "BlobEndpoint=https://acct.blob.core.windows.net;SharedAccessSignature=sv=...",
                "expiration": "..."}}
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Tuple

import boto3
from azure.core.exceptions import AzureError
from azure.storage.blob import BlobServiceClient
from botocore.exceptions import BotoCoreError, ClientError

from snowflake_writer.config.table_config import ColumnConfig
from snowflake_writer.exceptions import UserError
from snowflake_writer.io.adapters.base import (
    SLICED_FILES_CHUNK_SIZE,
    StagingManifest,
    build_copy_statement,
    chunked,
    csv_format_options,
)
from snowflake_writer.io.loader.sql_utils import quote_identifier, quote_literal
from snowflake_writer.utils.logging import get_logger

logger = get_logger(__name__)

SAS_CONNECTION_PATTERN = re.compile(
    r"BlobEndpoint=https?://(.+);SharedAccessSignature=(.+)"
)


class ObjectStorage(Protocol):
    """Storage backend holding the staged files and their manifest."""

    is_sliced: bool

    def stage_url(self) -> str: ...
    def file_prefix(self) -> str: ...
    def credentials_clause(self) -> str: ...
    def fetch_manifest(self) -> StagingManifest: ...


def _manifest_entries(raw: Any) -> List[str]:
    """Extract ``entries[].url`` from a decoded sliced-file manifest."""
    if not isinstance(raw, dict) or not isinstance(raw.get("entries"), list):
        raise UserError("Load error: manifest does not contain an entries list.")
    try:
        return [str(entry["url"]) for entry in raw["entries"]]
    except (KeyError, TypeError) as e:
        raise UserError(f"Load error: invalid manifest entry: {e}") from e


def _decode_manifest(payload: bytes) -> Any:
    try:
        return json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise UserError(f"Load error: manifest is not valid JSON: {e}") from e


class S3Storage:
    """Staged files in an S3 bucket; manifests are read with boto3."""

    def __init__(
        self,
        bucket: str,
        key: str,
        region: str,
        is_sliced: bool,
        credentials: Mapping[str, str],
        client: Optional[Any] = None,
    ):
        self.bucket = bucket
        self.key = key
        self.region = region
        self.is_sliced = is_sliced
        self.credentials = dict(credentials)
        self._client = client

    @classmethod
    def from_manifest_info(cls, info: Mapping[str, Any]) -> "S3Storage":
        try:
            credentials = info["credentials"]
            return cls(
                bucket=info["bucket"],
                key=info["key"],
                region=info["region"],
                is_sliced=bool(info["isSliced"]),
                credentials={
                    "access_key_id": credentials["access_key_id"],
                    "secret_access_key": credentials["secret_access_key"],
                    "session_token": credentials["session_token"],
                },
            )
        except KeyError as e:
            raise UserError(f"Load error: S3 manifest info is missing {e}") from e

    def stage_url(self) -> str:
        return f"s3://{self.bucket}"

    def file_prefix(self) -> str:
        return self.stage_url()

    def credentials_clause(self) -> str:
        return (
            f"AWS_KEY_ID = {quote_literal(self.credentials['access_key_id'])} "
            f"AWS_SECRET_KEY = {quote_literal(self.credentials['secret_access_key'])} "
            f"AWS_TOKEN = {quote_literal(self.credentials['session_token'])}"
        )

    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=self.credentials["access_key_id"],
                aws_secret_access_key=self.credentials["secret_access_key"],
                aws_session_token=self.credentials["session_token"],
            )
        return self._client

    def fetch_manifest(self) -> StagingManifest:
        if not self.is_sliced:
            locations: Tuple[str, ...] = (f"{self.file_prefix()}/{self.key}",)
            return StagingManifest(False, locations, self.credentials)

        try:
            response = self.client().get_object(
                Bucket=self.bucket, Key=self.key.lstrip("/")
            )
            payload = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise UserError(f"Load error: {e}") from e

        entries = _manifest_entries(_decode_manifest(payload))
        return StagingManifest(True, tuple(entries), self.credentials)


class AbsStorage:
    """Staged files in an Azure Blob Storage container."""

    def __init__(
        self,
        account_endpoint: str,
        container: str,
        name: str,
        is_sliced: bool,
        sas_token: str,
        client: Optional[Any] = None,
    ):
        self.account_endpoint = account_endpoint
        self.container = container
        self.name = name
        self.is_sliced = is_sliced
        self.sas_token = sas_token
        self._client = client

    @classmethod
    def from_manifest_info(cls, info: Mapping[str, Any]) -> "AbsStorage":
        try:
            connection_string = info["credentials"]["sas_connection_string"]
            match = SAS_CONNECTION_PATTERN.search(connection_string)
            if match is None:
                raise UserError("Load error: invalid SAS connection string.")
            return cls(
                account_endpoint=match.group(1),
                container=info["container"],
                name=info["name"],
                is_sliced=bool(info["is_sliced"]),
                sas_token=match.group(2),
            )
        except KeyError as e:
            raise UserError(f"Load error: ABS manifest info is missing {e}") from e

    def stage_url(self) -> str:
        return f"azure://{self.account_endpoint}/{self.container}"

    def file_prefix(self) -> str:
        return f"https://{self.account_endpoint}/{self.container}"

    def credentials_clause(self) -> str:
        return f"AZURE_SAS_TOKEN = {quote_literal(self.sas_token)}"

    def client(self) -> Any:
        if self._client is None:
            self._client = BlobServiceClient(
                account_url=f"https://{self.account_endpoint}",
                credential=self.sas_token,
            )
        return self._client

    def _ensure_blob_exists(self, container_client: Any, blob_path: str) -> None:
        # COPY INTO silently loads nothing when a listed blob is missing
        try:
            container_client.get_blob_client(blob_path).get_blob_properties()
        except AzureError as e:
            raise UserError(f"Load error: {e}") from e

    def fetch_manifest(self) -> StagingManifest:
        credentials = {"sas_token": self.sas_token}
        container_client = self.client().get_container_client(self.container)

        if not self.is_sliced:
            self._ensure_blob_exists(container_client, self.name)
            locations: Tuple[str, ...] = (f"{self.file_prefix()}/{self.name}",)
            return StagingManifest(False, locations, credentials)

        try:
            payload = container_client.get_blob_client(self.name).download_blob().readall()
        except AzureError as e:
            raise UserError("Load error: manifest file was not found.") from e

        entries: List[str] = []
        container_marker = f"/{self.container}/"
        for url in _manifest_entries(_decode_manifest(payload)):
            _, _, blob_path = url.partition(container_marker)
            self._ensure_blob_exists(container_client, blob_path or url)
            entries.append(url.replace("azure://", "https://", 1))
        return StagingManifest(True, tuple(entries), credentials)


class ObjectStoreAdapter:
    """
    Staging adapter for files uploaded to an object store.

    The manifest is resolved eagerly, so a missing or unreadable manifest
    fails when the adapter is built rather than halfway through a load.
    """

    def __init__(self, storage: ObjectStorage, chunk_size: int = SLICED_FILES_CHUNK_SIZE):
        self.storage = storage
        self.chunk_size = chunk_size
        self.manifest = storage.fetch_manifest()
        logger.info(
            "adapter.manifest.loaded",
            stage_url=storage.stage_url(),
            is_sliced=self.manifest.is_sliced,
            files=len(self.manifest.file_locations),
        )

    def create_stage_statement(self, stage_name: str) -> str:
        return (
            f"CREATE OR REPLACE STAGE {quote_identifier(stage_name)} "
            f"FILE_FORMAT = ({csv_format_options(self.manifest.is_sliced)}) "
            f"URL = {quote_literal(self.storage.stage_url())} "
            f"CREDENTIALS = ({self.storage.credentials_clause()})"
        )

    def relative_paths(self) -> List[str]:
        """Manifest entries relative to the stage URL."""
        prefix = self.storage.file_prefix() + "/"
        return [
            location[len(prefix) :] if location.startswith(prefix) else location
            for location in self.manifest.file_locations
        ]

    def copy_statements(
        self, table: str, stage_name: str, columns: Sequence[ColumnConfig]
    ) -> List[str]:
        return [
            build_copy_statement(table, stage_name, columns, files)
            for files in chunked(self.relative_paths(), self.chunk_size)
        ]


def adapter_from_manifest(
    manifest: Mapping[str, Any], chunk_size: int = SLICED_FILES_CHUNK_SIZE
) -> ObjectStoreAdapter:
    """Pick the storage backend described by a table manifest."""
    storage: ObjectStorage
    if "s3" in manifest:
        storage = S3Storage.from_manifest_info(manifest["s3"])
    elif "abs" in manifest:
        storage = AbsStorage.from_manifest_info(manifest["abs"])
    else:
        raise UserError("Unknown input adapter")
    return ObjectStoreAdapter(storage, chunk_size=chunk_size)


__all__ = [
    "AbsStorage",
    "ObjectStorage",
    "ObjectStoreAdapter",
    "S3Storage",
    "adapter_from_manifest",
]
