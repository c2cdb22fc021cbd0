import mongomock
import pytest

from db import mongo
from db.models import ENTRY_FIELDS, ROW_NUMBER_FIELD


@pytest.fixture
def db(monkeypatch):
    """In-memory entries collection in place of MONGODB_URI."""
    database = mongomock.MongoClient().db
    monkeypatch.setattr(mongo, "_db", database)
    return database


@pytest.fixture
def make_entry():
    """Entry dict with every field blank except the ones given."""
    def _make(row=2, **fields):
        entry = {f: "" for f in ENTRY_FIELDS}
        entry.update(fields)
        entry[ROW_NUMBER_FIELD] = row
        return entry
    return _make
