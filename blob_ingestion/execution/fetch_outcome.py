import json
from dataclasses import dataclass
from typing import Any, Union

FOUND = "found"
NOT_FOUND = "not_found"
FAILED = "failed"


# Slot 数据面/执行结果（HTTP → sink 的单位）
@dataclass(frozen=True)
class Found:
    slot: int
    payload: Any
    root: str | None = None

    status = FOUND


@dataclass(frozen=True)
class NotFound:
    slot: int

    status = NOT_FOUND


@dataclass(frozen=True)
class Failed:
    slot: int
    cause: str
    attempts: int = 1
    http_status: int | None = None

    status = FAILED


FetchOutcome = Union[Found, NotFound, Failed]


def to_record(outcome: FetchOutcome) -> dict:
    if isinstance(outcome, Found):
        record = {"slot": outcome.slot, "status": FOUND, "response": outcome.payload}
        if outcome.root is not None:
            record["root"] = outcome.root
        return record
    if isinstance(outcome, NotFound):
        return {"slot": outcome.slot, "status": NOT_FOUND, "response": None}
    raise TypeError(f"cannot serialize {type(outcome).__name__} for slot {outcome.slot}")


def to_line(outcome: FetchOutcome) -> str:
    """One compact JSON object terminated by a newline."""
    return json.dumps(to_record(outcome), ensure_ascii=False, separators=(",", ":")) + "\n"


def parse_line(line: str | bytes) -> FetchOutcome:
    record = json.loads(line)
    status = record.get("status")
    if status == FOUND:
        return Found(slot=record["slot"], payload=record["response"], root=record.get("root"))
    if status == NOT_FOUND:
        return NotFound(slot=record["slot"])
    raise ValueError(f"unknown record status {status!r}")
