from .slot_planner import SlotRange, FetchTask, SlotPlanner

__all__ = [
    "SlotRange",
    "FetchTask",
    "SlotPlanner",
]
