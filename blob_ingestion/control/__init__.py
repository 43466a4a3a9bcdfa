from .slot_status import SlotStatus
from .slot_record import SlotRecord
from .slot_registry import SlotRegistry

__all__ = [
    "SlotStatus",
    "SlotRecord",
    "SlotRegistry",
]
