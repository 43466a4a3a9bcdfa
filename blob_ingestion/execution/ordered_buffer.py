from blob_ingestion.execution.fetch_outcome import FetchOutcome

# OrderedResultBuffer（保证顺序写入）
# 介于 worker 与 sink 之间
# 不关心 retry / planner


class OrderedResultBuffer:
    def __init__(self, first_slot: int):
        self._buffer: dict[int, FetchOutcome] = {}
        self._next_slot = first_slot
        self.high_watermark = 0

    def add(self, outcome: FetchOutcome):
        slot = outcome.slot
        if slot < self._next_slot or slot in self._buffer:
            raise RuntimeError(f"slot {slot} already resolved")

        self._buffer[slot] = outcome
        self.high_watermark = max(self.high_watermark, len(self._buffer))

    def pop_ready(self) -> list[FetchOutcome]:
        ready = []
        while self._next_slot in self._buffer:
            ready.append(self._buffer.pop(self._next_slot))
            self._next_slot += 1
        return ready

    @property
    def next_slot(self) -> int:
        return self._next_slot

    def __len__(self) -> int:
        return len(self._buffer)
