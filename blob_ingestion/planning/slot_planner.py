from typing import Iterator, Optional
from dataclasses import dataclass


# Slot range（顺序是从这里开始的）
@dataclass(frozen=True)
class SlotRange:
    from_slot: int
    to_slot: int

    def __post_init__(self):
        if self.from_slot < 0:
            raise ValueError(f"from_slot must be >= 0, got {self.from_slot}")
        if self.from_slot > self.to_slot:
            raise ValueError(
                f"from_slot {self.from_slot} > to_slot {self.to_slot}"
            )

    def __len__(self) -> int:
        return self.to_slot - self.from_slot + 1

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.from_slot, self.to_slot + 1))

    def progress(self, next_slot: int) -> float:
        """Percentage of the range below ``next_slot``."""
        done = min(max(next_slot - self.from_slot, 0), len(self))
        return round(done / len(self) * 100, 2)


@dataclass(frozen=True)
class FetchTask:
    slot: int


class SlotPlanner:
    """
    Bounded backfill planner
    - 有明确 to_slot
    - 升序生成, 生成完即结束
    - 不感知执行结果, 不 retry
    """

    def __init__(self, slot_range: SlotRange):
        self._range = slot_range
        self._slots = iter(slot_range)
        self._next_slot = slot_range.from_slot

    def next_task(self) -> Optional[FetchTask]:
        slot = next(self._slots, None)
        if slot is None:
            return None

        self._next_slot = slot + 1
        return FetchTask(slot=slot)

    @property
    def exhausted(self) -> bool:
        return self._next_slot > self._range.to_slot
