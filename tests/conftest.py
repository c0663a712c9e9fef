"""Pytest configuration for the unit and opt-in integration suites.

``.env.test`` (repository root) is loaded FIRST when present so integration
credentials and SNOWFLAKE_WRITER_* overrides come from one place.
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

_TEST_ENV_FILE = Path(__file__).parent.parent / ".env.test"
if _TEST_ENV_FILE.exists():
    load_dotenv(_TEST_ENV_FILE, override=True)

import os
from typing import Any, Dict, Iterator

import pytest

from snowflake_writer.config.settings import Settings, get_settings

INTEGRATION_OPTION = "run_integration"
INTEGRATION_MARK = "integration"
INTEGRATION_ENV = "RUN_INTEGRATION_TESTS"


def _env_enabled(name: str) -> bool:
    """Return True when the opt-in environment flag is set to '1'."""
    return os.getenv(name) == "1"


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register the flag that mirrors RUN_INTEGRATION_TESTS."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        dest=INTEGRATION_OPTION,
        default=_env_enabled(INTEGRATION_ENV),
        help="Run tests against a live Snowflake account "
        "(set RUN_INTEGRATION_TESTS=1 or pass --run-integration).",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Skip the integration suite unless it was asked for."""
    if config.getoption(INTEGRATION_OPTION):
        return
    skip_integration = pytest.mark.skip(
        reason="Set RUN_INTEGRATION_TESTS=1 or pass --run-integration to run against Snowflake."
    )
    for item in items:
        if INTEGRATION_MARK in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with fast, deterministic values for unit tests."""
    return Settings(
        max_backoff_attempts=3,
        login_timeout=5,
        statement_timeout_seconds=3600,
        copy_chunk_size=1000,
        run_id=None,
    )


@pytest.fixture
def db_params() -> Dict[str, Any]:
    return {
        "host": "acme.snowflakecomputing.com",
        "database": "ANALYTICS",
        "schema": "RAW",
        "user": "LOADER",
        "#password": "s3cr3t",
        "warehouse": "LOAD_WH",
    }


@pytest.fixture
def table_params() -> Dict[str, Any]:
    return {
        "tableId": "in.c-main.orders",
        "dbName": "orders",
        "incremental": False,
        "primaryKey": ["id"],
        "items": [
            {"name": "id", "dbName": "id", "type": "int", "size": None, "nullable": False},
            {"name": "name", "dbName": "name", "type": "varchar", "size": 255, "nullable": True},
            {"name": "note", "dbName": "note", "type": "ignore"},
            {"name": "amount", "dbName": "amount", "type": "number", "size": "12,2", "default": 0},
        ],
    }


@pytest.fixture
def s3_manifest() -> Dict[str, Any]:
    return {
        "columns": ["id", "name", "note", "amount"],
        "s3": {
            "isSliced": True,
            "region": "us-east-1",
            "bucket": "kbc-files",
            "key": "/exp-1/orders.csvmanifest",
            "credentials": {
                "access_key_id": "AKIAEXAMPLE",
                "secret_access_key": "wJalrXUtnFEMI",
                "session_token": "FwoGZXIvYXdzEJr",
            },
        },
    }
