from dataclasses import dataclass, field
import time
from .slot_status import SlotStatus


# 控制面 / 状态机, 不存 payload
@dataclass
class SlotRecord:
    slot: int

    status: SlotStatus = SlotStatus.PENDING
    attempts: int = 0
    last_error: str | None = None

    created_ts: float = field(default_factory=time.time)
    updated_ts: float = field(default_factory=time.time)

    def touch(self):
        self.updated_ts = time.time()
