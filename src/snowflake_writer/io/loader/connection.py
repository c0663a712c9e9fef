"""
Snowflake session wrapper.

Owns one snowflake-connector-python connection, retries connection
establishment on transient failures and funnels every statement through
:meth:`SnowflakeConnection.execute` / :meth:`SnowflakeConnection.fetch_all`
so failures surface uniformly as ``UserError``.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional

import snowflake.connector
from cryptography.hazmat.primitives import serialization
from snowflake.connector import DictCursor
from snowflake.connector.errors import Error as SnowflakeError

from snowflake_writer.config.settings import Settings, get_settings
from snowflake_writer.config.table_config import DatabaseConfig
from snowflake_writer.exceptions import UserError
from snowflake_writer.io.loader import sql_utils
from snowflake_writer.utils.logging import get_logger

logger = get_logger(__name__)

# Error signatures of transient failures worth a reconnect
RETRYABLE_SIGNATURES = ("S1000", "250001", "Connection reset", "timed out")

SNOWFLAKE_HOST_SUFFIX = ".snowflakecomputing.com"


def is_retryable(error: BaseException) -> bool:
    message = str(error).lower()
    return any(signature.lower() in message for signature in RETRYABLE_SIGNATURES)


def _load_private_key(pem: str) -> bytes:
    """Convert a PEM private key into the DER bytes the connector expects."""
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as e:
        raise UserError(f"Invalid private key: {e}") from e
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


class SnowflakeConnection:
    """One Snowflake session with retrying connect and uniform error wrapping."""

    def __init__(
        self,
        host: Optional[str] = None,
        user: Optional[str] = None,
        database: Optional[str] = None,
        schema: Optional[str] = None,
        password: Optional[str] = None,
        private_key: Optional[str] = None,
        port: int = 443,
        warehouse: Optional[str] = None,
        run_id: Optional[str] = None,
        max_backoff_attempts: int = 5,
        login_timeout: int = 30,
        network_timeout: Optional[int] = None,
        connect_factory: Optional[Callable[..., Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        options = {
            "host": host,
            "user": user,
            "password": password or private_key,
            "database": database,
            "schema": schema,
        }
        missing = [name for name, value in options.items() if not value]
        if missing:
            raise UserError(f"Missing options: {', '.join(missing)}")

        self.host = host
        self.user = user
        self.database = database
        self.schema = schema
        self.port = int(port or 443)
        self.warehouse = warehouse
        self.run_id = run_id
        self.max_backoff_attempts = max_backoff_attempts
        self.login_timeout = login_timeout
        self.network_timeout = network_timeout
        self._password = password
        self._private_key = private_key
        self._connect_factory = connect_factory or snowflake.connector.connect
        self._sleep = sleep
        self._connection: Any = None

        self._connection = self._connect_with_retry()
        if run_id:
            self.execute(
                "ALTER SESSION SET QUERY_TAG = "
                + self.quote_literal(json.dumps({"runId": run_id}))
            )

    @classmethod
    def from_config(
        cls,
        config: DatabaseConfig,
        settings: Optional[Settings] = None,
        **kwargs: Any,
    ) -> "SnowflakeConnection":
        """Build a connection from config.yml values and environment defaults."""
        settings = settings or get_settings()
        return cls(
            host=config.host,
            user=config.user,
            database=config.database,
            schema=config.schema_name,
            password=config.password,
            private_key=config.private_key,
            port=config.port,
            warehouse=config.warehouse,
            run_id=config.run_id or settings.run_id,
            max_backoff_attempts=settings.max_backoff_attempts,
            login_timeout=settings.login_timeout,
            network_timeout=settings.network_timeout,
            **kwargs,
        )

    def _connect_params(self) -> Dict[str, Any]:
        host = self.host or ""
        account = host[: -len(SNOWFLAKE_HOST_SUFFIX)] if host.endswith(SNOWFLAKE_HOST_SUFFIX) else host
        params: Dict[str, Any] = {
            "account": account,
            "host": host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
            "schema": self.schema,
            "login_timeout": self.login_timeout,
            "client_session_keep_alive": True,
        }
        if self._private_key:
            params["private_key"] = _load_private_key(self._private_key)
        else:
            params["password"] = self._password
        if self.warehouse:
            params["warehouse"] = self.warehouse
        if self.network_timeout is not None:
            params["network_timeout"] = self.network_timeout
        return params

    def _connect_with_retry(self) -> Any:
        """Open the session, backing off exponentially on transient failures."""
        params = self._connect_params()
        attempt = 0
        while True:
            try:
                connection = self._connect_factory(**params)
                logger.info(
                    "connection.established",
                    host=self.host,
                    database=self.database,
                    schema=self.schema,
                    attempts=attempt + 1,
                )
                return connection
            except (SnowflakeError, OSError) as e:
                if is_retryable(e) and attempt < self.max_backoff_attempts:
                    attempt += 1
                    wait_seconds = 2**attempt
                    logger.warning(
                        "connection.retry",
                        host=self.host,
                        attempt=attempt,
                        wait_seconds=wait_seconds,
                        error=str(e),
                    )
                    self._sleep(wait_seconds)
                    continue
                raise UserError(f"Initializing Snowflake connection failed: {e}") from e

    # Quoting

    @staticmethod
    def quote_identifier(name: str) -> str:
        return sql_utils.quote_identifier(name)

    @staticmethod
    def quote_literal(value: str) -> str:
        return sql_utils.quote_literal(value)

    # Execution

    def _require_connection(self) -> Any:
        if self._connection is None:
            raise UserError("Snowflake connection is closed")
        return self._connection

    def execute(self, sql: str) -> None:
        """Execute a statement that returns no rows."""
        logger.info("connection.query.executing", sql=sql)
        cursor = self._require_connection().cursor()
        try:
            cursor.execute(sql)
        except SnowflakeError as e:
            raise UserError(f"Query execution error: {e}") from e
        finally:
            cursor.close()

    def fetch_all(self, sql: str) -> List[Dict[str, Any]]:
        """Execute a query and return its rows as dicts keyed by column name."""
        logger.debug("connection.query.fetching", sql=sql)
        cursor = self._require_connection().cursor(DictCursor)
        try:
            cursor.execute(sql)
            rows = cursor.fetchall()
        except SnowflakeError as e:
            raise UserError(f"Query execution error: {e}") from e
        finally:
            cursor.close()
        return [dict(row) for row in rows]

    # Lifecycle

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("connection.closed", host=self.host)

    def __enter__(self) -> "SnowflakeConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
