"""Tests for RETURNING capability detection."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from bulkload.capability import (
    MIN_RETURNING_VERSION,
    VersionInfo,
    detect_returning_support,
    parse_version,
)


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.supports_returning = None
    return session


class TestParseVersion:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("3.45.1", (3, 45, 1)),
            ("3.35", (3, 35, 0)),
            ("3.35a.2", (3, 35, 2)),
            ("3.x.1", (3, 0, 1)),
            ("", (0, 0, 0)),
            (None, (0, 0, 0)),
            ("3.40.0.1", (3, 40, 0)),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_version(raw) == VersionInfo(*expected)

    def test_minimum(self):
        assert MIN_RETURNING_VERSION == (3, 35, 0)


class TestDetectReturningSupport:
    @pytest.mark.parametrize(
        "version,supported",
        [("3.35.0", True), ("3.45.1", True), ("3.34.1", False), ("2.8.17", False)],
    )
    def test_version_threshold(self, mock_session, version, supported):
        mock_session.scalar.return_value = version
        assert detect_returning_support(mock_session) is supported
        assert mock_session.supports_returning is supported

    def test_queries_once_per_session(self, mock_session):
        """Should reuse the flag cached on the session."""
        mock_session.scalar.return_value = "3.45.0"

        assert detect_returning_support(mock_session) is True
        assert detect_returning_support(mock_session) is True

        mock_session.scalar.assert_called_once()

    def test_cached_false_is_respected(self, mock_session):
        mock_session.supports_returning = False
        assert detect_returning_support(mock_session) is False
        mock_session.scalar.assert_not_called()

    def test_query_failure_means_unsupported(self, mock_session):
        mock_session.scalar.side_effect = OperationalError("SELECT", {}, Exception("boom"))
        assert detect_returning_support(mock_session) is False
        assert mock_session.supports_returning is False

    def test_real_session_is_cached_and_cleared_on_close(self, session):
        supported = detect_returning_support(session)
        assert session.supports_returning is supported

        session.close()
        assert session.supports_returning is None
