"""Unit tests for structured logging and credential redaction."""

import json
import logging

import pytest

from snowflake_writer.utils.logging import (
    REDACTED_VALUE,
    bind_context,
    get_logger,
    redact_credentials,
    sanitize_for_logging,
)


@pytest.mark.unit
def test_get_logger_renders_json(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    logger = get_logger("writer_test_logger")
    logger.info("writer.load_full.started", table="orders")

    log_data = json.loads(caplog.records[-1].message)
    assert log_data["event"] == "writer.load_full.started"
    assert log_data["logger"] == "writer_test_logger"
    assert log_data["table"] == "orders"
    assert "timestamp" in log_data


@pytest.mark.unit
def test_bind_context(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    logger = bind_context(component="application", run_id="123")
    logger.info("application.run.completed")

    log_data = json.loads(caplog.records[-1].message)
    assert log_data["component"] == "application"
    assert log_data["run_id"] == "123"


@pytest.mark.unit
@pytest.mark.parametrize(
    "key",
    ["password", "DB_PASSWORD", "session_token", "aws_secret", "private_key", "privateKey", "credentials"],
)
def test_sensitive_keys_redacted(key: str) -> None:
    sanitized = sanitize_for_logging({key: "value", "user": "LOADER"})

    assert sanitized[key] == REDACTED_VALUE
    assert sanitized["user"] == "LOADER"


@pytest.mark.unit
def test_nested_values_sanitized() -> None:
    sanitized = sanitize_for_logging({"db": {"host": "acme", "password": "x"}})

    assert sanitized == {"db": {"host": "acme", "password": REDACTED_VALUE}}


@pytest.mark.unit
def test_redact_credentials_s3() -> None:
    sql = (
        "CREATE OR REPLACE STAGE \"s\" URL = 's3://bucket' "
        "CREDENTIALS = (AWS_KEY_ID = 'AKIA' AWS_SECRET_KEY = 'abc\\'def' AWS_TOKEN = 'tok')"
    )

    assert redact_credentials(sql) == (
        "CREATE OR REPLACE STAGE \"s\" URL = 's3://bucket' "
        "CREDENTIALS = (AWS_KEY_ID = '...' AWS_SECRET_KEY = '...' AWS_TOKEN = '...')"
    )


@pytest.mark.unit
def test_redact_credentials_azure() -> None:
    sql = "CREDENTIALS = (AZURE_SAS_TOKEN = 'sv=2021&sig=abc')"

    assert redact_credentials(sql) == "CREDENTIALS = (AZURE_SAS_TOKEN = '...')"


@pytest.mark.unit
def test_statement_logged_without_credentials(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    get_logger("writer_test_logger").info(
        "connection.query.executing", sql="CREDENTIALS = (AZURE_SAS_TOKEN = 'sv=1&sig=zzz')"
    )

    message = caplog.records[-1].message
    assert "sig=zzz" not in message
    assert "AZURE_SAS_TOKEN = '...'" in message
