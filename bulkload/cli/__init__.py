"""Command-line interface for bulkload."""

from bulkload.cli.main import main

__all__ = ["main"]
