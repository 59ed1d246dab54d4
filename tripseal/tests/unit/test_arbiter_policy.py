from __future__ import annotations

import pytest

from tripseal.core.errors import ForbiddenError
from tripseal.domain.models import OperatorPermissions, User
from tripseal.services.authz.arbiter import (
    Actor,
    ActorScope,
    SessionFacts,
    decide_allocation,
    decide_create,
    decide_guard_action,
    decide_maintenance,
    decide_modify,
    decide_read,
    enforce,
)

FACTS = SessionFacts(session_id="s-1", company_id="co-1", created_by_id="op-1", seal_verified_by_id="g-9")
IN_SCOPE = ActorScope(company_ids=frozenset({"co-1"}))
OUT_OF_SCOPE = ActorScope(company_ids=frozenset({"co-2"}))


@pytest.mark.parametrize(
    ("actor", "scope", "allowed"),
    [
        (Actor("sa", "SUPERADMIN"), ActorScope(), True),
        (Actor("ad", "ADMIN"), IN_SCOPE, True),
        (Actor("ad", "ADMIN"), OUT_OF_SCOPE, False),
        (Actor("co-1", "COMPANY", company_id="co-1"), IN_SCOPE, True),
        (Actor("co-2", "COMPANY", company_id="co-2"), OUT_OF_SCOPE, False),
        (Actor("g-1", "EMPLOYEE", "GUARD", "co-1"), IN_SCOPE, True),
        (Actor("g-2", "EMPLOYEE", "GUARD", "co-2"), OUT_OF_SCOPE, False),
        (Actor("op-1", "EMPLOYEE", "OPERATOR", "co-2"), OUT_OF_SCOPE, True),
        (Actor("g-9", "EMPLOYEE", "DRIVER", "co-2"), OUT_OF_SCOPE, True),
        (Actor("op-2", "EMPLOYEE", "OPERATOR", "co-1"), IN_SCOPE, True),
        (Actor("op-3", "EMPLOYEE", "OPERATOR", "co-2"), OUT_OF_SCOPE, False),
        (Actor("x", "VISITOR"), IN_SCOPE, False),
    ],
)
def test_read_policy_matrix(actor: Actor, scope: ActorScope, allowed: bool) -> None:
    assert decide_read(actor, FACTS, scope).allowed is allowed


def test_unresolved_company_linkage_denies() -> None:
    facts = SessionFacts(session_id="s-1", company_id=None, created_by_id="op-1")
    decision = decide_read(Actor("g-1", "EMPLOYEE", "GUARD", "co-1"), facts, IN_SCOPE)
    assert decision.allowed is False


def test_modify_requires_operator_permission_and_read_access() -> None:
    operator = Actor("op-2", "EMPLOYEE", "OPERATOR", "co-1")
    read = decide_read(operator, FACTS, IN_SCOPE)
    can_modify = OperatorPermissions(user_id="op-2", can_create=True, can_modify=True, can_delete=False)
    cannot_modify = OperatorPermissions(user_id="op-2", can_create=True, can_modify=False, can_delete=False)
    assert decide_modify(operator, can_modify, read).allowed is True
    assert decide_modify(operator, cannot_modify, read).allowed is False
    assert decide_modify(operator, None, read).allowed is False
    denied_read = decide_read(Actor("op-3", "EMPLOYEE", "OPERATOR", "co-2"), FACTS, OUT_OF_SCOPE)
    assert decide_modify(Actor("op-3", "EMPLOYEE", "OPERATOR", "co-2"), can_modify, denied_read).allowed is False
    assert decide_modify(Actor("ad", "ADMIN"), can_modify, read).allowed is False


def test_create_requires_operator_with_company() -> None:
    permissions = OperatorPermissions(user_id="op", can_create=True, can_modify=False, can_delete=False)
    assert decide_create(Actor("op", "EMPLOYEE", "OPERATOR", "co-1"), permissions).allowed is True
    assert decide_create(Actor("op", "EMPLOYEE", "OPERATOR", None), permissions).reason == "company_required"
    assert decide_create(Actor("g", "EMPLOYEE", "GUARD", "co-1"), permissions).allowed is False


def test_guard_action_needs_guard_and_read() -> None:
    guard = Actor("g-1", "EMPLOYEE", "GUARD", "co-1")
    assert decide_guard_action(guard, decide_read(guard, FACTS, IN_SCOPE)).allowed is True
    outsider = Actor("g-2", "EMPLOYEE", "GUARD", "co-2")
    assert decide_guard_action(outsider, decide_read(outsider, FACTS, OUT_OF_SCOPE)).allowed is False
    operator = Actor("op-1", "EMPLOYEE", "OPERATOR", "co-1")
    assert decide_guard_action(operator, decide_read(operator, FACTS, IN_SCOPE)).reason == "guard_required"


def test_allocation_rules() -> None:
    admin_user = User(id="ad", name="Admin", role="ADMIN", created_by_id="sa")
    operator_user = User(id="op", name="Op", role="EMPLOYEE", subrole="OPERATOR", created_by_id="ad")
    stranger_operator = User(id="op2", name="Op2", role="EMPLOYEE", subrole="OPERATOR", created_by_id="other")
    assert decide_allocation(Actor("sa", "SUPERADMIN"), admin_user).allowed is True
    assert decide_allocation(Actor("sa", "SUPERADMIN"), operator_user).allowed is False
    assert decide_allocation(Actor("ad", "ADMIN"), operator_user).allowed is True
    assert decide_allocation(Actor("ad", "ADMIN"), stranger_operator).allowed is False
    assert decide_allocation(Actor("op", "EMPLOYEE", "OPERATOR", "co"), admin_user).allowed is False


def test_maintenance_and_enforce() -> None:
    assert decide_maintenance(Actor("ad", "ADMIN")).allowed is True
    assert decide_maintenance(Actor("g", "EMPLOYEE", "GUARD", "co")).allowed is False
    with pytest.raises(ForbiddenError) as excinfo:
        enforce(decide_maintenance(Actor("g", "EMPLOYEE", "GUARD", "co")), "nope")
    assert excinfo.value.details == {"reason": "admin_required"}
