from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from tripseal.domain.models import Seal, TripSession


async def get_trip_session(session: AsyncSession, session_id: str) -> TripSession | None:
    return await session.get(TripSession, session_id)


async def list_trip_sessions(
    session: AsyncSession,
    *,
    scope: ColumnElement[bool] | None,
    status: str | None = None,
    search: str | None = None,
    unverified_only: bool = False,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[tuple[TripSession, Seal | None]], int]:
    # Outer join keeps sessions visible even before their seal is repaired.
    filters: list[Any] = []
    if scope is not None:
        filters.append(scope)
    if status:
        filters.append(TripSession.status == status)
    if unverified_only:
        filters.append(Seal.verified.is_(False))
    if search:
        pattern = f"%{search.strip().lower()}%"
        filters.append(
            or_(
                func.lower(TripSession.source).like(pattern),
                func.lower(TripSession.destination).like(pattern),
                func.lower(Seal.barcode).like(pattern),
            )
        )
    base = select(TripSession, Seal).outerjoin(Seal, Seal.session_id == TripSession.id).where(*filters)
    count_stmt = (
        select(func.count(TripSession.id))
        .select_from(TripSession)
        .outerjoin(Seal, Seal.session_id == TripSession.id)
        .where(*filters)
    )
    total = int((await session.execute(count_stmt)).scalar_one())
    result = await session.execute(
        base.order_by(TripSession.created_at.desc(), TripSession.id).offset((page - 1) * limit).limit(limit)
    )
    return [(row[0], row[1]) for row in result.all()], total
