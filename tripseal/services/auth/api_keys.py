from __future__ import annotations

import hashlib
import secrets
from uuid import uuid4

from tripseal.domain.vocabulary import EMPLOYEE_SUBROLES, ROLE_EMPLOYEE, USER_ROLES


API_KEY_PREFIX = "ts"


def normalize_role(role: str) -> str:
    # Roles are stored upper-case to match historical records.
    normalized = role.strip().upper()
    if normalized not in USER_ROLES:
        raise ValueError(f"Unsupported role: {role}")
    return normalized


def normalize_subrole(role: str, subrole: str | None) -> str | None:
    # Only employees carry a subrole.
    if not subrole:
        if role == ROLE_EMPLOYEE:
            raise ValueError("Employees require a subrole")
        return None
    normalized = subrole.strip().upper()
    if role != ROLE_EMPLOYEE:
        raise ValueError("Only employees may have a subrole")
    if normalized not in EMPLOYEE_SUBROLES:
        raise ValueError(f"Unsupported subrole: {subrole}")
    return normalized


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(*, key_id: str | None = None) -> tuple[str, str, str, str]:
    # Embed the key id in the token so operators can trace secrets safely.
    resolved_id = key_id or uuid4().hex
    secret = secrets.token_urlsafe(32)
    raw_key = f"{API_KEY_PREFIX}_{resolved_id}_{secret}"
    key_prefix = raw_key[:12]
    return resolved_id, raw_key, key_prefix, hash_api_key(raw_key)
