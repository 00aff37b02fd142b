import sqlite3

import pytest

from income_dashboard.portfolio.schema import initialize_store_schema


@pytest.fixture
def store_db():
    """In-memory key-value store with the schema initialized."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    initialize_store_schema(conn)
    yield conn
    conn.close()
