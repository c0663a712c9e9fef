"""
Staging adapters: turn files staged in cloud storage into Snowflake
CREATE STAGE and COPY INTO statements.
"""

from .base import SLICED_FILES_CHUNK_SIZE, StagingAdapter, StagingManifest
from .null_adapter import NullAdapter
from .object_store import (
    AbsStorage,
    ObjectStorage,
    ObjectStoreAdapter,
    S3Storage,
    adapter_from_manifest,
)

__all__ = [
    "SLICED_FILES_CHUNK_SIZE",
    "AbsStorage",
    "NullAdapter",
    "ObjectStorage",
    "ObjectStoreAdapter",
    "S3Storage",
    "StagingAdapter",
    "StagingManifest",
    "adapter_from_manifest",
]
