"""Pytest fixtures: temp paths and a freshly created cities database."""

import pytest

import database


@pytest.fixture
def db_path(tmp_path):
    """Path to a database file that does not exist yet."""
    return tmp_path / "cities.db"


@pytest.fixture
def db(db_path):
    """Handle on a newly created database; closed after the test."""
    handle = database.create_database(db_path)
    yield handle
    handle.close()
