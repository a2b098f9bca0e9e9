"""Detects whether the connected SQLite supports ``RETURNING``."""

import re
from typing import Any, NamedTuple

from sqlalchemy.exc import SQLAlchemyError

from bulkload.utils.logging_context import OperationType, get_logging_context


class VersionInfo(NamedTuple):
    major: int
    minor: int
    patch: int


# First SQLite release with INSERT ... RETURNING
MIN_RETURNING_VERSION = VersionInfo(3, 35, 0)

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


def _component(part: str) -> int:
    match = _LEADING_DIGITS.match(part)
    return int(match.group(1)) if match else 0


def parse_version(version: Any) -> VersionInfo:
    """Parse "3.45.1" style strings; missing or non-numeric parts become 0."""
    parts = [_component(p) for p in str(version or "0.0.0").split(".")]
    parts += [0] * (3 - len(parts))
    return VersionInfo(*parts[:3])


def detect_returning_support(session) -> bool:
    """
    Return whether ``session`` supports RETURNING, querying at most once.

    The answer is cached on ``session.supports_returning`` for as long as the
    session stays open. Failing to query or parse the version counts as
    unsupported.
    """
    if session.supports_returning is not None:
        return session.supports_returning

    ctx = get_logging_context()
    with ctx.operation(OperationType.DETECT, "sqlite_version"):
        try:
            raw = session.scalar("SELECT sqlite_version() AS v")
            version = parse_version(raw)
            supported = version >= MIN_RETURNING_VERSION
        except (SQLAlchemyError, TypeError, ValueError) as e:
            ctx.warning(
                "Could not detect SQLite version, RETURNING disabled",
                error_type=type(e).__name__,
                error=str(e),
            )
            supported = False
        else:
            ctx.debug(
                "Detected SQLite version",
                version=".".join(map(str, version)),
                returning=supported,
            )

    session.supports_returning = supported
    return supported
