"""Pytest configuration for test isolation.

Every test that touches the database gets its own file-backed SQLite DB under
``tmp_path``. Engines are cached per URL in ``db.client``; they are disposed
after each test so no connection outlives its temporary file. Environment
variables the application reads are cleared so a developer's ``.env`` or
shell cannot leak into the tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make sure the workspace `packages/` and `libs/db/src` dirs are importable
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines  # noqa: E402

from tests.helpers.db import bootstrap_sqlite_db, seed_account  # noqa: E402
from tests.helpers.factories import ACCOUNT_ID, USER_ID  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("ANOMALY_DETECTION_LOG_LEVEL", raising=False)


@pytest.fixture
def db_url(tmp_path: Path):
    """URL of a fresh SQLite database with the full schema and one account."""

    url = bootstrap_sqlite_db(tmp_path / "anomalies.sqlite3")
    seed_account(url, account_id=ACCOUNT_ID, user_id=USER_ID)
    yield url
    dispose_engines()
