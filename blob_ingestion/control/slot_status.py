from enum import Enum


# 控制面状态机，不属于数据、不属于执行。
class SlotStatus(str, Enum):
    PENDING = "PENDING"
    INFLIGHT = "INFLIGHT"
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (SlotStatus.FOUND, SlotStatus.NOT_FOUND, SlotStatus.FAILED)
