"""
Shared pytest fixtures: a throwaway SQLite database per test.
"""

import os
import sys

import pytest

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp import db


@pytest.fixture
def cfp_db(tmp_path, monkeypatch):
    """Point CFP_DB_PATH at a fresh file and create the schema."""
    monkeypatch.setenv("CFP_DB_PATH", str(tmp_path / "cfp.db"))
    db.init_db()
    return db
