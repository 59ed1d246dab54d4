from __future__ import annotations

import os
import tempfile
from uuid import uuid4

# Point the engine at a throwaway SQLite file before any tripseal module builds it.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'tripseal-test-{uuid4().hex}.db')}",
)

import pytest

from tripseal.core.config import get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    # Tests that monkeypatch env vars must not see a stale Settings instance.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
