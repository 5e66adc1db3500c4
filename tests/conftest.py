"""Pytest fixtures."""

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest

from listings_search.core.db import init_db


@pytest.fixture
def db(tmp_path: Path) -> Iterator[sqlite3.Connection]:
    """Fresh SQLite listing store per test."""
    conn = init_db(tmp_path / "listings.db")
    yield conn
    conn.close()
