from .slot_record import SlotRecord
from .slot_status import SlotStatus

from blob_ingestion.execution.fetch_outcome import FetchOutcome, Failed, Found, NotFound

_OUTCOME_STATUS = {
    Found: SlotStatus.FOUND,
    NotFound: SlotStatus.NOT_FOUND,
    Failed: SlotStatus.FAILED,
}


# -------------------------
# single source of truth
# 生命周期管理器
# 不关心 HTTP / sink
# -------------------------
class SlotRegistry:
    """
    Single source of truth for slot lifecycle:
    PENDING -> INFLIGHT -> {FOUND | NOT_FOUND | FAILED}.
    """

    def __init__(self):
        self._slots: dict[int, SlotRecord] = {}

    # -------------------------
    # register
    # -------------------------
    def register(self, slot: int) -> SlotRecord:
        if slot in self._slots:
            raise RuntimeError(f"slot {slot} already registered")

        r = SlotRecord(slot=slot)
        self._slots[slot] = r
        return r

    # -------------------------
    # lookup
    # -------------------------
    def get(self, slot: int) -> SlotRecord:
        try:
            return self._slots[slot]
        except KeyError:
            raise KeyError(f"slot {slot} not found")

    # -------------------------
    # state transitions
    # -------------------------
    def mark_inflight(self, slot: int):
        r = self.get(slot)
        if r.status is not SlotStatus.PENDING:
            raise RuntimeError(f"slot {slot}: {r.status.value} -> INFLIGHT")
        r.status = SlotStatus.INFLIGHT
        r.touch()

    def mark_resolved(self, outcome: FetchOutcome) -> SlotRecord:
        r = self.get(outcome.slot)
        if r.status is not SlotStatus.INFLIGHT:
            raise RuntimeError(f"slot {outcome.slot}: {r.status.value} -> resolved")

        r.status = _OUTCOME_STATUS[type(outcome)]
        if isinstance(outcome, Failed):
            r.attempts = outcome.attempts
            r.last_error = outcome.cause
        r.touch()
        return r

    def release(self, slot: int):
        """Forget a resolved slot once its line is flushed."""
        r = self.get(slot)
        if not r.status.terminal:
            raise RuntimeError(f"slot {slot} released while {r.status.value}")
        self._slots.pop(slot, None)

    # -------------------------
    # helpers
    # -------------------------
    def inflight_count(self) -> int:
        return sum(1 for r in self._slots.values() if r.status is SlotStatus.INFLIGHT)

    def active_slots(self) -> list[SlotRecord]:
        return [r for r in self._slots.values() if not r.status.terminal]

    def __len__(self) -> int:
        return len(self._slots)
