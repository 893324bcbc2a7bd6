"""
Snowflake database connection management.

Provides the connection factory and context managers used by the
repositories, plus an in-memory mock connection for local development
and tests.

Repositories never open connections themselves; the storage service is
handed a connection provider and opens one per unit of work.
"""

import base64
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, ContextManager, Generator, Optional

from .repositories.content import CONTENT_COLUMNS
from .repositories.storage_settings import SETTINGS_COLUMNS, SnowflakeConnection

logger = logging.getLogger(__name__)

ConnectionProvider = Callable[[], ContextManager[SnowflakeConnection]]


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "COURSECAST"
    schema: str = "CONTENT"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


def _load_private_key(pem_bytes: bytes) -> bytes:
    """
    Convert a PEM private key into the DER/PKCS8 bytes Snowflake expects.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem_bytes,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _private_key_from_config(config: SnowflakeConfig) -> Optional[bytes]:
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _load_private_key(key_file.read())
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (base64 or file path) is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
        'client_session_keep_alive': True,
    }

    private_key = _private_key_from_config(config)
    if private_key is not None:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = private_key
    elif config.password:
        logger.info("Using password authentication for Snowflake")
        connect_params['password'] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or a private key must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}") from e

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface for the storage
    settings and course content repositories. Queries are recognised by
    table name and statement keyword; parameters arrive as dicts.
    """

    def __init__(self, storage: dict) -> None:
        self._storage = storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[dict] = None) -> 'MockSnowflakeCursor':
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = query.upper().strip()
        params = params or {}
        self._results = []
        self._rowcount = 0

        if 'VIDEO_STORAGE_SETTINGS' in query_upper:
            self._handle_settings(query_upper, params)
        elif 'COURSE_CONTENT' in query_upper:
            self._handle_content(query_upper, params)

        return self

    def _handle_settings(self, query: str, params: dict) -> None:
        table = self._storage['video_storage_settings']
        settings_id = params.get('settings_id')

        if query.startswith('SELECT'):
            row = table.get(settings_id)
            if row:
                self._results = [tuple(row.get(col) for col in SETTINGS_COLUMNS)]

        elif query.startswith('MERGE INTO'):
            table[settings_id] = {col: params.get(col) for col in SETTINGS_COLUMNS}
            self._rowcount = 1

    def _handle_content(self, query: str, params: dict) -> None:
        table = self._storage['course_content']

        if query.startswith('SELECT'):
            if 'WHERE CONTENT_ID' in query:
                row = table.get(params.get('content_id'))
                rows = [row] if row else []
            elif 'WHERE MIGRATION_STATE' in query:
                rows = [
                    row for row in table.values()
                    if row.get('migration_state') == params.get('migration_state')
                ]
            else:
                rows = list(table.values())
            self._results = [
                tuple(row.get(col) for col in CONTENT_COLUMNS) for row in rows
            ]

        elif query.startswith('MERGE INTO'):
            table[params['content_id']] = {col: params.get(col) for col in CONTENT_COLUMNS}
            self._rowcount = 1

        elif query.startswith('UPDATE'):
            row = table.get(params.get('content_id'))
            if row is not None and 'IS DISTINCT FROM' in query:
                if row.get('migration_state') == params.get('migration_state'):
                    row = None
            if row is not None:
                for key, value in params.items():
                    if key != 'content_id':
                        row[key] = value
                self._rowcount = 1

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return self._results

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores rows in memory keyed by table and primary key.
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {id: row_dict}}
        self._storage: dict[str, dict] = {
            'video_storage_settings': {},
            'course_content': {},
        }
        self.commits = 0

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self._storage)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        self.commits += 1
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Rollback transaction (no-op for mock)."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()


@contextmanager
def shared_connection(conn: SnowflakeConnection) -> Generator[SnowflakeConnection, None, None]:
    """Lend an already-open connection without closing it afterwards."""
    yield conn


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_connection_provider(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
    mock_connection: Optional[MockSnowflakeConnection] = None,
) -> ConnectionProvider:
    """
    Create a connection provider based on configuration.

    In mock mode every call lends the same in-memory connection so data
    persists for the life of the process. Otherwise each call opens and
    closes a real Snowflake connection.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return mock connections for testing
        mock_connection: Existing mock to share (a new one is created if None)
    """
    if mock_mode:
        conn = mock_connection or MockSnowflakeConnection()
        return lambda: shared_connection(conn)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return lambda: get_snowflake_connection(config)
