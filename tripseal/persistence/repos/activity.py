from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import ActivityLog


async def list_session_logs(session: AsyncSession, session_id: str) -> list[ActivityLog]:
    # Newest first so payload resolution can stop at the first match.
    stmt = (
        select(ActivityLog)
        .where(ActivityLog.target_resource_id == session_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
