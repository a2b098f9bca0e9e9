"""Context-aware logging for bulk runs.

Wraps :class:`StructuredLogger` with the identity of the node and table a
message belongs to, and times operations (connect, bracket statements,
chunks) through :meth:`LoggingContext.operation`.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from bulkload.utils.logging import StructuredLogger

__all__ = [
    "LoggingContext",
    "OperationMetrics",
    "OperationType",
    "StructuredLogger",
    "create_logging_context",
    "get_logging_context",
    "set_logging_context",
]


class OperationType(str, Enum):
    """Kinds of timed operations."""

    CONNECT = "connect"
    BRACKET = "bracket"
    DETECT = "detect"
    EXECUTE = "execute"
    CHUNK = "chunk"


@dataclass
class OperationMetrics:
    """Timing and row counts for one operation."""

    start_time: Optional[float] = None
    end_time: Optional[float] = None
    rows_in: Optional[int] = None
    rows_out: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    @property
    def row_delta(self) -> Optional[int]:
        if self.rows_in is None or self.rows_out is None:
            return None
        return self.rows_out - self.rows_in

    def to_dict(self) -> Dict[str, Any]:
        """Return only populated fields."""
        result: Dict[str, Any] = {}
        if self.elapsed_ms is not None:
            result["elapsed_ms"] = round(self.elapsed_ms, 2)
        if self.rows_in is not None:
            result["rows_in"] = self.rows_in
        if self.rows_out is not None:
            result["rows_out"] = self.rows_out
        if self.row_delta is not None:
            result["row_delta"] = self.row_delta
        result.update(self.extra)
        return result


class LoggingContext:
    """Logger bound to a node/table identity."""

    def __init__(
        self,
        logger: Optional[StructuredLogger] = None,
        node_name: Optional[str] = None,
        table: Optional[str] = None,
    ):
        self._logger = logger
        self.node_name = node_name
        self.table = table

    @property
    def logger(self) -> StructuredLogger:
        if self._logger is not None:
            return self._logger
        from bulkload.utils import logging as logging_module

        return logging_module.logger

    def _base_context(self) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat()}
        if self.node_name:
            ctx["node"] = self.node_name
        if self.table:
            ctx["table"] = self.table
        return ctx

    def with_context(self, **kwargs) -> "LoggingContext":
        """Return a copy with some identity fields replaced."""
        return LoggingContext(
            logger=self._logger,
            node_name=kwargs.get("node_name", self.node_name),
            table=kwargs.get("table", self.table),
        )

    def __enter__(self) -> "LoggingContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is not None:
            self.error(
                f"Exception in context: {exc_val}",
                error_type=exc_type.__name__ if exc_type else None,
            )
        return False

    def _log(self, level: str, message: str, **kwargs) -> None:
        payload = self._base_context()
        payload.pop("timestamp", None)
        payload.update(kwargs)
        getattr(self.logger, level)(message, **payload)

    def info(self, message: str, **kwargs) -> None:
        self._log("info", message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log("warning", message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log("error", message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log("debug", message, **kwargs)

    def log_operation_start(
        self, operation: OperationType, description: str, **kwargs
    ) -> OperationMetrics:
        metrics = OperationMetrics(start_time=time.time())
        self.debug(f"Starting {operation.value}: {description}", **kwargs)
        return metrics

    def log_operation_end(
        self,
        operation: OperationType,
        description: str,
        metrics: OperationMetrics,
        success: bool = True,
        **kwargs,
    ) -> None:
        metrics.end_time = time.time()
        details = {**metrics.to_dict(), **kwargs}
        if success:
            self.debug(f"Completed {operation.value}: {description}", **details)
        else:
            self.error(f"Failed {operation.value}: {description}", **details)

    @contextmanager
    def operation(
        self, operation: OperationType, description: str, **kwargs
    ) -> Iterator[OperationMetrics]:
        """Time a block and log its start and end."""
        metrics = self.log_operation_start(operation, description, **kwargs)
        try:
            yield metrics
        except Exception as e:
            self.log_operation_end(
                operation,
                description,
                metrics,
                success=False,
                error_type=type(e).__name__,
                error_message=str(e),
            )
            raise
        self.log_operation_end(operation, description, metrics)


_global_context: Optional[LoggingContext] = None


def get_logging_context() -> LoggingContext:
    """Return the process-wide logging context, creating it on first use."""
    global _global_context
    if _global_context is None:
        _global_context = LoggingContext()
    return _global_context


def set_logging_context(context: LoggingContext) -> None:
    global _global_context
    _global_context = context


def create_logging_context(
    node_name: Optional[str] = None,
    table: Optional[str] = None,
    logger: Optional[StructuredLogger] = None,
) -> LoggingContext:
    return LoggingContext(logger=logger, node_name=node_name, table=table)
