from __future__ import annotations

import argparse
import asyncio
import sys
from uuid import uuid4

from tripseal.domain.models import ApiKey, Company, OperatorPermissions, User
from tripseal.domain.vocabulary import ACTION_CREATE, ROLE_COMPANY, RESOURCE_USER, SUBROLE_OPERATOR
from tripseal.persistence.db import SessionLocal
from tripseal.services.audit import record_activity
from tripseal.services.auth.api_keys import generate_api_key, normalize_role, normalize_subrole


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision a user and issue an API key")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument("--email", required=True, help="Unique email")
    parser.add_argument("--role", required=True, help="Role: SUPERADMIN|ADMIN|COMPANY|EMPLOYEE")
    parser.add_argument("--subrole", default=None, help="Employee subrole: OPERATOR|DRIVER|TRANSPORTER|GUARD")
    parser.add_argument("--company-id", default=None, help="Company the user belongs to")
    parser.add_argument("--created-by", default=None, help="Id of the provisioning user")
    parser.add_argument("--coins", type=int, default=0, help="Opening coin balance")
    parser.add_argument("--can-modify", action="store_true", help="Operators: allow session edits")
    parser.add_argument("--no-create", action="store_true", help="Operators: deny session creation")
    parser.add_argument("--key-name", default="default", help="API key label")
    return parser


async def _provision(args: argparse.Namespace) -> int:
    role = normalize_role(args.role)
    subrole = normalize_subrole(role, args.subrole)
    if args.coins < 0:
        raise ValueError("Opening balance cannot be negative")
    user_id = uuid4().hex
    key_id, raw_key, key_prefix, key_hash = generate_api_key()

    async with SessionLocal() as session:
        company_id = args.company_id
        if role == ROLE_COMPANY and company_id is None:
            # Company users own a Company row keyed by their own id.
            company_id = user_id
            session.add(Company(id=company_id, name=args.name, created_by_id=args.created_by))
        user = User(
            id=user_id,
            name=args.name,
            email=args.email,
            role=role,
            subrole=subrole,
            company_id=company_id,
            created_by_id=args.created_by,
            coins=args.coins,
            is_active=True,
        )
        session.add(user)
        await session.flush()
        if subrole == SUBROLE_OPERATOR:
            session.add(
                OperatorPermissions(
                    user_id=user_id,
                    can_create=not args.no_create,
                    can_modify=args.can_modify,
                    can_delete=False,
                )
            )
        session.add(ApiKey(id=key_id, user_id=user_id, key_prefix=key_prefix, key_hash=key_hash, name=args.key_name))
        await record_activity(
            session=session,
            user_id=args.created_by,
            action=ACTION_CREATE,
            target_resource_id=user_id,
            target_resource_type=RESOURCE_USER,
            details={"role": role, "subrole": subrole, "companyId": company_id, "keyPrefix": key_prefix},
        )
        await session.commit()

    print("User created:")
    print(f"  user_id: {user_id}")
    print(f"  role: {role}{'/' + subrole if subrole else ''}")
    print(f"  key_prefix: {key_prefix}")
    print("  api_key: ")
    print(f"    {raw_key}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_provision(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_user failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
