from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from tripseal.domain.models import ApiKey, Company, OperatorPermissions, User
from tripseal.domain.vocabulary import ROLE_COMPANY, SUBROLE_OPERATOR
from tripseal.persistence.db import SessionLocal
from tripseal.services.auth.api_keys import generate_api_key, normalize_role, normalize_subrole


async def create_test_company(*, name: str = "Acme Logistics", created_by_id: str | None = None) -> str:
    # Company row plus the COMPANY user that represents it; both share one id.
    company_id = uuid4().hex
    async with SessionLocal() as session:
        session.add(
            User(
                id=company_id,
                name=name,
                email=f"{company_id}@company.test",
                role=ROLE_COMPANY,
                company_id=company_id,
                created_by_id=created_by_id,
            )
        )
        await session.flush()
        session.add(Company(id=company_id, name=name, created_by_id=created_by_id))
        await session.commit()
    return company_id


async def create_test_user(
    *,
    role: str,
    subrole: str | None = None,
    company_id: str | None = None,
    created_by_id: str | None = None,
    coins: int = 0,
    can_create: bool = True,
    can_modify: bool = False,
    user_active: bool = True,
    key_revoked: bool = False,
    name: str | None = None,
) -> tuple[str, dict[str, str]]:
    # Provision a user + API key pair for integration tests.
    normalized_role = normalize_role(role)
    normalized_subrole = normalize_subrole(normalized_role, subrole)
    user_id = uuid4().hex
    key_id, raw_key, key_prefix, key_hash = generate_api_key()

    async with SessionLocal() as session:
        session.add(
            User(
                id=user_id,
                name=name or f"{normalized_subrole or normalized_role} {user_id[:6]}",
                email=f"{user_id}@users.test",
                role=normalized_role,
                subrole=normalized_subrole,
                company_id=company_id,
                created_by_id=created_by_id,
                coins=coins,
                is_active=user_active,
            )
        )
        # Flush the user insert before dependent rows to satisfy FK constraints.
        await session.flush()
        if normalized_subrole == SUBROLE_OPERATOR:
            session.add(OperatorPermissions(user_id=user_id, can_create=can_create, can_modify=can_modify))
        session.add(
            ApiKey(
                id=key_id,
                user_id=user_id,
                key_prefix=key_prefix,
                key_hash=key_hash,
                name="test-key",
                revoked_at=datetime.now(timezone.utc) if key_revoked else None,
            )
        )
        await session.commit()

    return user_id, {"Authorization": f"Bearer {raw_key}"}


async def get_user_coins(user_id: str) -> int:
    async with SessionLocal() as session:
        user = await session.get(User, user_id)
        return user.coins if user is not None else 0
