"""
SQLite Connection
=================

One exclusively owned SQLite connection per run, opened through SQLAlchemy.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from bulkload.config import PragmaConfig
from bulkload.exceptions import ConnectionError
from bulkload.utils.logging_context import OperationType, get_logging_context


def split_statements(sql: Optional[str]) -> List[str]:
    """Split ';'-separated SQL into individual statements."""
    if not sql:
        return []
    return [part.strip() for part in sql.split(";") if part.strip()]


class SqliteSession:
    """
    A single SQLite connection with its cached capabilities.

    The connection runs in autocommit mode; transactions are explicit
    ``BEGIN`` / ``COMMIT`` / ``ROLLBACK`` statements issued by the caller.
    ``supports_returning`` is filled in by capability detection and cleared
    on close, so it never outlives the connection it describes.
    """

    def __init__(self, path: str, pragmas: Optional[PragmaConfig] = None):
        self.path = path
        self.pragmas = pragmas or PragmaConfig()
        self.supports_returning: Optional[bool] = None
        self._engine: Optional[Engine] = None
        self._conn: Optional[Connection] = None
        self.ctx = get_logging_context()

    @property
    def url(self) -> str:
        return f"sqlite:///{self.path}"

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> Connection:
        if self._conn is None:
            raise ConnectionError(
                connection_name=f"SQLite({self.path})",
                reason="Session is not open",
                suggestions=["Call open() or use the session as a context manager"],
            )
        return self._conn

    def open(self) -> "SqliteSession":
        """Open the connection and apply pragmas.

        Raises:
            ConnectionError: If the database cannot be opened or a pragma fails
        """
        if self._conn is not None:
            return self

        with self.ctx.operation(OperationType.CONNECT, f"open {self.path}"):
            try:
                self._engine = create_engine(
                    self.url, poolclass=NullPool, isolation_level="AUTOCOMMIT"
                )
                self._conn = self._engine.connect()
                self.supports_returning = None
                self._apply_pragmas()
            except SQLAlchemyError as e:
                self.close()
                raise ConnectionError(
                    connection_name=f"SQLite({self.path})",
                    reason=f"Failed to open database: {e}",
                    suggestions=self._get_error_suggestions(str(e)),
                ) from e
        return self

    def _apply_pragmas(self) -> None:
        if self.pragmas.wal:
            self.execute_script("PRAGMA journal_mode=WAL")
        if self.pragmas.synchronous:
            self.execute_script(f"PRAGMA synchronous={self.pragmas.synchronous.value}")
        if self.pragmas.extra:
            self.execute_script(self.pragmas.extra)

    def close(self) -> None:
        """Close the connection and dispose of the engine. Safe to call twice."""
        conn, engine = self._conn, self._engine
        self._conn = None
        self._engine = None
        self.supports_returning = None
        try:
            if conn is not None:
                conn.close()
        except SQLAlchemyError as e:
            self.ctx.warning("Error while closing connection", path=self.path, error=str(e))
        finally:
            if engine is not None:
                engine.dispose()

    def __enter__(self) -> "SqliteSession":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> CursorResult:
        """Execute one statement with named bind parameters."""
        return self.connection.execute(text(sql), params or {})

    def execute_script(self, sql: str) -> None:
        """Execute raw ';'-separated statements, with no parameter parsing."""
        for statement in split_statements(sql):
            self.connection.exec_driver_sql(statement)

    def scalar(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.execute(sql, params).scalar()

    def begin(self) -> None:
        self.connection.exec_driver_sql("BEGIN")

    def commit(self) -> None:
        self.connection.exec_driver_sql("COMMIT")

    def rollback(self) -> None:
        self.connection.exec_driver_sql("ROLLBACK")

    def _get_error_suggestions(self, error_msg: str) -> List[str]:
        """Generate suggestions based on error message."""
        suggestions = []
        error_lower = error_msg.lower()

        if "unable to open" in error_lower:
            suggestions.append("Check that the directory exists and is writable")
            suggestions.append(f"Verify the database path: {self.path}")

        if "locked" in error_lower or "busy" in error_lower:
            suggestions.append("Another process holds a lock; consider pragmas.wal: true")

        if "syntax error" in error_lower:
            suggestions.append("Check pragmas.extra for invalid statements")

        return suggestions
