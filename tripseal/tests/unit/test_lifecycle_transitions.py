from __future__ import annotations

import pytest

from tripseal.core.errors import InvalidTransitionError
from tripseal.domain.models import TripSession
from tripseal.services.lifecycle import can_transition, transition


def test_status_moves_forward_only() -> None:
    assert can_transition("PENDING", "IN_PROGRESS") is True
    assert can_transition("IN_PROGRESS", "COMPLETED") is True
    assert can_transition("PENDING", "COMPLETED") is False
    assert can_transition("COMPLETED", "IN_PROGRESS") is False
    assert can_transition("IN_PROGRESS", "PENDING") is False
    assert can_transition("COMPLETED", "COMPLETED") is False


def test_transition_raises_conflict_on_illegal_move() -> None:
    trip_session = TripSession(id="s-1", status="COMPLETED", company_id="c", created_by_id="u")
    with pytest.raises(InvalidTransitionError) as excinfo:
        transition(trip_session, "IN_PROGRESS")
    assert excinfo.value.status_code == 409
    assert excinfo.value.details == {"from": "COMPLETED", "to": "IN_PROGRESS"}
    assert trip_session.status == "COMPLETED"


def test_transition_updates_status() -> None:
    trip_session = TripSession(id="s-1", status="PENDING", company_id="c", created_by_id="u")
    transition(trip_session, "IN_PROGRESS")
    assert trip_session.status == "IN_PROGRESS"
