from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import FieldTimestamp


async def get_field_timestamp(session: AsyncSession, session_id: str, field_name: str) -> FieldTimestamp | None:
    result = await session.execute(
        select(FieldTimestamp).where(
            FieldTimestamp.session_id == session_id,
            FieldTimestamp.field_name == field_name,
        )
    )
    return result.scalar_one_or_none()


async def list_field_timestamps(session: AsyncSession, session_id: str) -> list[FieldTimestamp]:
    result = await session.execute(
        select(FieldTimestamp).where(FieldTimestamp.session_id == session_id).order_by(FieldTimestamp.field_name)
    )
    return list(result.scalars().all())
