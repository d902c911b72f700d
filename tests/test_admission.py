from datetime import time

import pytest

from food_ordering.core.exceptions import StoreClosedError
from food_ordering.services.admission import AdmissionGate
from food_ordering.services.schedule import StoreAvailabilityConfig


@pytest.fixture
def gate():
    return AdmissionGate()


def test_open_store_admits(gate):
    decision = gate.admit(StoreAvailabilityConfig(mode="AUTO"), time(12, 0))
    assert decision.accepted
    decision.raise_for_rejection()


def test_break_rejects_with_next_change(gate):
    decision = gate.admit(StoreAvailabilityConfig(mode="AUTO"), time(21, 0))
    assert not decision.accepted
    assert decision.next_change_time == "22:00"

    with pytest.raises(StoreClosedError) as exc_info:
        decision.raise_for_rejection()
    assert exc_info.value.status_code == 409
    assert exc_info.value.to_dict()["next_change_time"] == "22:00"


def test_manual_override_beats_schedule(gate):
    assert gate.admit(StoreAvailabilityConfig(mode="OPEN"), time(21, 0)).accepted
    assert not gate.admit(StoreAvailabilityConfig(mode="CLOSED"), time(12, 0)).accepted


def test_missing_config_fails_closed(gate):
    verdict = gate.verdict(None, time(12, 0))
    assert not verdict.is_open
    assert verdict.mode == "UNKNOWN"
    assert not gate.admit(None, time(12, 0)).accepted


def test_resolver_failure_fails_closed(gate, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("corrupted")

    monkeypatch.setattr("food_ordering.services.admission.resolve_availability", boom)
    decision = gate.admit(StoreAvailabilityConfig(mode="AUTO"), time(12, 0))
    assert not decision.accepted
