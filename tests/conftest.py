import os
import pytest
from datetime import datetime, timedelta, timezone

import bookmerge.config as config_module
import bookmerge.db as db_module
from bookmerge.db import Database
from bookmerge.records import BookmarkRecord


BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep every test away from the user's config, database and terminal."""
    monkeypatch.setenv("BOOKMERGE_NO_PROGRESS", "1")
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in list(os.environ):
        if key.startswith("BOOKMERGE_") and key != "BOOKMERGE_NO_PROGRESS":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_config", None)
    monkeypatch.setattr(db_module, "_db", None)
    yield


@pytest.fixture
def make_record():
    """
    Factory for bookmark records.

    Records created without explicit dates get date_added one day apart, in
    creation order, so "earliest" is always the first one created.
    """
    counter = {"n": 0}

    def factory(id=None, url="https://example.com", title="Example", **fields):
        counter["n"] += 1
        n = counter["n"]
        fields.setdefault("date_added", BASE_TIME + timedelta(days=n))
        fields.setdefault("date_modified", BASE_TIME + timedelta(days=n))
        return BookmarkRecord(id=id or f"b{n}", url=url, title=title, **fields)

    return factory


@pytest.fixture
def sample_records(make_record):
    """Small collection with one exact pair, one normalized pair and a loner."""
    return [
        make_record("a", "https://example.com/page", "Example Page", tags=("web",), visits=3),
        make_record("b", "https://example.com/page", "Example Page (copy)", tags=("copy",), visits=2),
        make_record("c", "https://Docs.Python.org/3/", "Python Docs"),
        make_record("d", "https://docs.python.org/3", "Python 3 Documentation", is_favorite=True),
        make_record("e", "https://unrelated.org", "Something Else"),
    ]


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database in a temporary directory."""
    return Database(path=str(tmp_path / "test.db"))


@pytest.fixture
def populated_db(db, sample_records):
    db.import_records(sample_records)
    return db
