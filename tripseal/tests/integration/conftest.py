from __future__ import annotations

import pytest

from tripseal.domain.models import Base
from tripseal.persistence.db import engine


@pytest.fixture(autouse=True)
async def fresh_schema() -> None:
    # Every integration test starts from empty tables.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
