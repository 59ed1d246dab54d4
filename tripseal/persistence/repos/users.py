from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripseal.domain.models import Company, OperatorPermissions, User
from tripseal.domain.vocabulary import ROLE_COMPANY


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    return await session.get(User, user_id)


async def get_operator_permissions(session: AsyncSession, user_id: str) -> OperatorPermissions | None:
    return await session.get(OperatorPermissions, user_id)


async def admin_company_ids(session: AsyncSession, admin_id: str) -> set[str]:
    # Companies onboarded by the admin, directly or through a company user it created.
    company_rows = await session.execute(select(Company.id).where(Company.created_by_id == admin_id))
    ids = {row[0] for row in company_rows}
    user_rows = await session.execute(
        select(User.id, User.company_id).where(User.role == ROLE_COMPANY, User.created_by_id == admin_id)
    )
    for user_id, company_id in user_rows:
        ids.add(user_id)
        if company_id:
            ids.add(company_id)
    return ids


async def company_identities(session: AsyncSession, company_id: str | None) -> set[str]:
    """Every id a company is known by.

    Sessions and employees reference either the Company row or, on older
    records, the COMPANY user standing in for it. Both directions are resolved
    here so callers can compare against one set.
    """
    if not company_id:
        return set()
    ids = {company_id}
    rows = await session.execute(
        select(User.id, User.company_id).where(
            User.role == ROLE_COMPANY,
            or_(User.id == company_id, User.company_id == company_id),
        )
    )
    for user_id, linked_company_id in rows:
        ids.add(user_id)
        if linked_company_id:
            ids.add(linked_company_id)
    return ids
