from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import GuardSealTag, Seal, SealTag


async def get_seal_for_session(session: AsyncSession, session_id: str) -> Seal | None:
    result = await session.execute(select(Seal).where(Seal.session_id == session_id))
    return result.scalar_one_or_none()


async def get_seal(session: AsyncSession, seal_id: str) -> Seal | None:
    return await session.get(Seal, seal_id)


async def list_seal_tags(session: AsyncSession, session_id: str) -> list[SealTag]:
    result = await session.execute(
        select(SealTag).where(SealTag.session_id == session_id).order_by(SealTag.created_at, SealTag.id)
    )
    return list(result.scalars().all())


async def list_guard_verified_tags(session: AsyncSession, session_id: str) -> list[SealTag]:
    result = await session.execute(
        select(SealTag)
        .where(SealTag.session_id == session_id, SealTag.guard_user_id.is_not(None))
        .order_by(SealTag.guard_timestamp, SealTag.id)
    )
    return list(result.scalars().all())


async def list_guard_seal_tags(session: AsyncSession, session_id: str) -> list[GuardSealTag]:
    result = await session.execute(
        select(GuardSealTag)
        .where(GuardSealTag.session_id == session_id)
        .order_by(GuardSealTag.created_at, GuardSealTag.id)
    )
    return list(result.scalars().all())


async def get_guard_seal_tag(session: AsyncSession, session_id: str, barcode: str) -> GuardSealTag | None:
    # Barcodes compare trimmed and case-insensitively.
    result = await session.execute(
        select(GuardSealTag).where(
            GuardSealTag.session_id == session_id,
            func.lower(GuardSealTag.barcode) == barcode.strip().lower(),
        )
    )
    return result.scalars().first()


async def seal_tag_exists(session: AsyncSession, barcode: str) -> bool:
    result = await session.execute(
        select(SealTag.id).where(func.lower(SealTag.barcode) == barcode.strip().lower()).limit(1)
    )
    return result.first() is not None


async def get_guard_image_data(session: AsyncSession, session_id: str, tag_id: str) -> str | None:
    # Guard scans live on GuardSealTag rows or, for matched tags, on the SealTag itself.
    guard_tag = await session.get(GuardSealTag, tag_id)
    if guard_tag is not None and guard_tag.session_id == session_id:
        return guard_tag.image_data
    seal_tag = await session.get(SealTag, tag_id)
    if seal_tag is not None and seal_tag.session_id == session_id:
        return seal_tag.guard_image_data
    return None
