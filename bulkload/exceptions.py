"""Custom exceptions for bulkload."""

from typing import Any, List, Optional


class BulkLoadException(Exception):
    """Base exception for all bulkload errors."""

    pass


class ConfigValidationError(BulkLoadException):
    """Configuration validation failed."""

    def __init__(self, message: str, file: Optional[str] = None, line: Optional[int] = None):
        self.message = message
        self.file = file
        self.line = line
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        """Format error message with location info."""
        parts = ["Configuration validation error"]
        if self.file:
            parts.append(f"\n  File: {self.file}")
        if self.line:
            parts.append(f"\n  Line: {self.line}")
        parts.append(f"\n  Error: {self.message}")
        return "".join(parts)


class InvalidIdentifierError(BulkLoadException):
    """A table or column name is not a plain SQL identifier."""

    def __init__(self, identifier: Any, role: str = "identifier"):
        self.identifier = identifier
        self.role = role
        super().__init__(f"Invalid {role}: {identifier!r}")


class ConnectionError(BulkLoadException):
    """Connection failed or invalid."""

    def __init__(self, connection_name: str, reason: str, suggestions: Optional[List[str]] = None):
        self.connection_name = connection_name
        self.reason = reason
        self.suggestions = suggestions or []
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        """Format connection error with suggestions."""
        parts = [
            f"✗ Connection failed: {self.connection_name}",
            f"\n  Reason: {self.reason}",
        ]

        if self.suggestions:
            parts.append("\n\n  Suggestions:")
            for i, suggestion in enumerate(self.suggestions, 1):
                parts.append(f"\n    {i}. {suggestion}")

        return "".join(parts)


class BracketStatementError(BulkLoadException):
    """The pre-run or post-run statement failed."""

    def __init__(self, phase: str, sql: str, original_error: Optional[Exception] = None):
        self.phase = phase
        self.sql = sql
        self.original_error = original_error
        self.summary = None
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        parts = [f"✗ {self.phase}-SQL failed"]
        parts.append(f"\n  Statement: {self.sql.strip()}")
        if self.original_error is not None:
            parts.append(f"\n  Type: {type(self.original_error).__name__}")
            parts.append(f"\n  Error: {self.original_error}")
        return "".join(parts)


class RowExecutionError(BulkLoadException):
    """A single row's statement failed."""

    def __init__(self, row_index: int, original_error: Exception):
        self.row_index = row_index
        self.original_error = original_error
        super().__init__(f"Row {row_index} failed: {original_error}")


class ChunkAbortError(BulkLoadException):
    """A row or transaction failure aborted the run.

    The partial summary is attached so callers can see what was durable
    when the run stopped.
    """

    def __init__(
        self,
        message: str,
        chunk_index: int,
        row_index: Optional[int] = None,
        summary: Any = None,
    ):
        self.message = message
        self.chunk_index = chunk_index
        self.row_index = row_index
        self.summary = summary
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        parts = [f"✗ Run aborted in chunk {self.chunk_index}"]
        if self.row_index is not None:
            parts.append(f" at row {self.row_index}")
        parts.append(f"\n  Error: {self.message}")
        return "".join(parts)
