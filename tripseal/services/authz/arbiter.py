from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import false, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from tripseal.core.errors import ForbiddenError
from tripseal.domain.models import OperatorPermissions, Seal, TripSession, User
from tripseal.domain.vocabulary import (
    ROLE_ADMIN,
    ROLE_COMPANY,
    ROLE_EMPLOYEE,
    ROLE_SUPERADMIN,
    SUBROLE_GUARD,
    SUBROLE_OPERATOR,
)
from tripseal.persistence.repos.users import admin_company_ids, company_identities


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str
    subrole: str | None = None
    company_id: str | None = None

    @property
    def is_operator(self) -> bool:
        return self.role == ROLE_EMPLOYEE and self.subrole == SUBROLE_OPERATOR

    @property
    def is_guard(self) -> bool:
        return self.role == ROLE_EMPLOYEE and self.subrole == SUBROLE_GUARD


@dataclass(frozen=True)
class ActorScope:
    """Company identities resolved for an actor ahead of policy evaluation."""

    company_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SessionFacts:
    session_id: str
    company_id: str | None
    created_by_id: str | None
    seal_verified_by_id: str | None = None

    @classmethod
    def of(cls, trip_session: TripSession, seal: Seal | None = None) -> "SessionFacts":
        return cls(
            session_id=trip_session.id,
            company_id=trip_session.company_id,
            created_by_id=trip_session.created_by_id,
            seal_verified_by_id=seal.verified_by_id if seal is not None else None,
        )


@dataclass(frozen=True)
class AccessDecision:
    # Deterministic allow/deny with a stable reason for logs and clients.
    allowed: bool
    reason: str


def _allow(reason: str) -> AccessDecision:
    return AccessDecision(allowed=True, reason=reason)


def _deny(reason: str) -> AccessDecision:
    return AccessDecision(allowed=False, reason=reason)


async def load_actor_scope(session: AsyncSession, actor: Actor) -> ActorScope:
    # Resolve company linkage once; unresolvable linkage yields an empty scope (deny).
    if actor.role == ROLE_ADMIN:
        return ActorScope(company_ids=frozenset(await admin_company_ids(session, actor.user_id)))
    if actor.role == ROLE_COMPANY:
        ids = await company_identities(session, actor.company_id)
        ids.add(actor.user_id)
        return ActorScope(company_ids=frozenset(ids))
    if actor.role == ROLE_EMPLOYEE:
        return ActorScope(company_ids=frozenset(await company_identities(session, actor.company_id)))
    return ActorScope()


def decide_read(actor: Actor, facts: SessionFacts, scope: ActorScope) -> AccessDecision:
    """Read policy, evaluated top to bottom; anything unmatched is denied.

    | actor            | allowed when                                          |
    |------------------|-------------------------------------------------------|
    | SUPERADMIN       | always                                                |
    | ADMIN            | session company was onboarded by the admin            |
    | COMPANY          | session company is one of the company's identities,   |
    |                  | or the company user created the session               |
    | EMPLOYEE/GUARD   | guard's company identities include session company    |
    | EMPLOYEE (other) | creator, seal verifier, or same company               |
    """
    in_company = facts.company_id is not None and facts.company_id in scope.company_ids
    if actor.role == ROLE_SUPERADMIN:
        return _allow("superadmin")
    if actor.role == ROLE_ADMIN:
        return _allow("admin_company") if in_company else _deny("admin_company_mismatch")
    if actor.role == ROLE_COMPANY:
        if in_company:
            return _allow("company_match")
        if facts.created_by_id == actor.user_id:
            return _allow("company_creator")
        return _deny("company_mismatch")
    if actor.role == ROLE_EMPLOYEE:
        if actor.subrole == SUBROLE_GUARD:
            return _allow("guard_company") if in_company else _deny("guard_company_mismatch")
        if facts.created_by_id == actor.user_id:
            return _allow("employee_creator")
        if facts.seal_verified_by_id is not None and facts.seal_verified_by_id == actor.user_id:
            return _allow("employee_verifier")
        if in_company:
            return _allow("employee_company")
        return _deny("employee_company_mismatch")
    return _deny("unknown_role")


def decide_modify(
    actor: Actor,
    permissions: OperatorPermissions | None,
    read_decision: AccessDecision,
) -> AccessDecision:
    if not actor.is_operator:
        return _deny("operator_required")
    if permissions is None or not permissions.can_modify:
        return _deny("modify_permission_required")
    if not read_decision.allowed:
        return _deny(read_decision.reason)
    return _allow("operator_modify")


def decide_create(actor: Actor, permissions: OperatorPermissions | None) -> AccessDecision:
    # Coin balance is checked by the atomic debit, not here.
    if not actor.is_operator:
        return _deny("operator_required")
    if permissions is None or not permissions.can_create:
        return _deny("create_permission_required")
    if not actor.company_id:
        return _deny("company_required")
    return _allow("operator_create")


def decide_guard_action(actor: Actor, read_decision: AccessDecision) -> AccessDecision:
    # Seal scans and verification completion share one rule.
    if not actor.is_guard:
        return _deny("guard_required")
    if not read_decision.allowed:
        return _deny(read_decision.reason)
    return _allow("guard_verify")


def decide_allocation(sender: Actor, receiver: User) -> AccessDecision:
    if sender.role == ROLE_SUPERADMIN:
        return _allow("superadmin_to_admin") if receiver.role == ROLE_ADMIN else _deny("superadmin_target_not_admin")
    if sender.role == ROLE_ADMIN:
        if receiver.role != ROLE_EMPLOYEE or receiver.subrole != SUBROLE_OPERATOR:
            return _deny("admin_target_not_operator")
        if receiver.created_by_id != sender.user_id:
            return _deny("admin_target_not_created")
        return _allow("admin_to_operator")
    return _deny("allocation_not_permitted")


def decide_maintenance(actor: Actor) -> AccessDecision:
    if actor.role in {ROLE_SUPERADMIN, ROLE_ADMIN}:
        return _allow("maintenance")
    return _deny("admin_required")


def enforce(decision: AccessDecision, message: str) -> None:
    if not decision.allowed:
        raise ForbiddenError(message, details={"reason": decision.reason})


def list_scope(actor: Actor, scope: ActorScope) -> ColumnElement[bool] | None:
    """The read policy as a SQL predicate over sessions joined to seals.

    Returns None when no restriction applies; denies collapse to ``false()``.
    """
    company_ids = sorted(scope.company_ids)
    in_company = TripSession.company_id.in_(company_ids) if company_ids else None
    if actor.role == ROLE_SUPERADMIN:
        return None
    if actor.role == ROLE_ADMIN:
        return in_company if in_company is not None else false()
    if actor.role == ROLE_COMPANY:
        clauses = [TripSession.created_by_id == actor.user_id]
        if in_company is not None:
            clauses.append(in_company)
        return or_(*clauses)
    if actor.role == ROLE_EMPLOYEE:
        if actor.subrole == SUBROLE_GUARD:
            return in_company if in_company is not None else false()
        clauses = [TripSession.created_by_id == actor.user_id, Seal.verified_by_id == actor.user_id]
        if in_company is not None:
            clauses.append(in_company)
        return or_(*clauses)
    return false()
