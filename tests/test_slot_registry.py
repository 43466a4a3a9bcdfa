import pytest

from blob_ingestion.control import SlotRegistry, SlotStatus
from blob_ingestion.execution import Found, NotFound, Failed


def test_lifecycle():
    registry = SlotRegistry()
    registry.register(1)
    assert registry.get(1).status is SlotStatus.PENDING

    registry.mark_inflight(1)
    assert registry.inflight_count() == 1

    record = registry.mark_resolved(Found(slot=1, payload={}))
    assert record.status is SlotStatus.FOUND
    assert registry.inflight_count() == 0
    assert registry.active_slots() == []

    registry.release(1)
    assert len(registry) == 0


def test_failed_keeps_cause():
    registry = SlotRegistry()
    registry.register(3)
    registry.mark_inflight(3)
    record = registry.mark_resolved(Failed(slot=3, cause="server_error", attempts=5))
    assert record.status is SlotStatus.FAILED
    assert record.attempts == 5
    assert record.last_error == "server_error"


def test_no_backward_transitions():
    registry = SlotRegistry()
    registry.register(1)

    with pytest.raises(RuntimeError):
        registry.mark_resolved(NotFound(slot=1))

    registry.mark_inflight(1)
    with pytest.raises(RuntimeError):
        registry.mark_inflight(1)

    registry.mark_resolved(NotFound(slot=1))
    with pytest.raises(RuntimeError):
        registry.mark_resolved(NotFound(slot=1))


def test_release_requires_terminal_state():
    registry = SlotRegistry()
    registry.register(1)
    with pytest.raises(RuntimeError):
        registry.release(1)


def test_duplicate_and_unknown_slots():
    registry = SlotRegistry()
    registry.register(1)
    with pytest.raises(RuntimeError):
        registry.register(1)
    with pytest.raises(KeyError):
        registry.get(2)
