"""Connection implementations for bulkload."""

from bulkload.connections.sqlite import SqliteSession, split_statements

__all__ = ["SqliteSession", "split_statements"]
