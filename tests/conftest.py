import logging
import sqlite3

import pytest

from bulkload.connections.sqlite import SqliteSession


@pytest.fixture(autouse=True)
def configure_logging():
    """Configure logging to avoid Rich Text object issues in tests."""
    # Disable Rich handlers and use basic logging
    root = logging.getLogger()
    for handler in root.handlers[:]:
        if hasattr(handler, "__class__") and "Rich" in handler.__class__.__name__:
            root.removeHandler(handler)
    # Set to WARNING level to reduce noise in tests
    logging.basicConfig(level=logging.WARNING, format="%(message)s", force=True)
    yield
    # Cleanup after test
    logging.basicConfig(level=logging.INFO, force=True)


ITEMS_DDL = (
    "CREATE TABLE items ("
    "id INTEGER PRIMARY KEY AUTOINCREMENT, "
    "sku TEXT NOT NULL UNIQUE, "
    "qty INTEGER, "
    "note TEXT)"
)


@pytest.fixture
def db_path(tmp_path):
    """SQLite file with an empty ``items`` table."""
    path = str(tmp_path / "items.db")
    conn = sqlite3.connect(path)
    try:
        conn.execute(ITEMS_DDL)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def session(db_path):
    """Open session on the ``items`` database, closed after the test."""
    s = SqliteSession(db_path).open()
    yield s
    s.close()


def fetch_rows(path, sql="SELECT id, sku, qty, note FROM items ORDER BY id"):
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


@pytest.fixture
def read_items(db_path):
    """Return the current rows of ``items`` as tuples."""
    return lambda: fetch_rows(db_path)
