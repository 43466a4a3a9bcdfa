from .fetch_outcome import Found, NotFound, Failed, FetchOutcome, to_record, to_line, parse_line
from .retry import ResponseClass, AttemptState, RetryPolicy, classify_status
from .ordered_buffer import OrderedResultBuffer

__all__ = [
    # outcomes
    "Found",
    "NotFound",
    "Failed",
    "FetchOutcome",
    "to_record",
    "to_line",
    "parse_line",

    # retry
    "ResponseClass",
    "AttemptState",
    "RetryPolicy",
    "classify_status",

    # ordering
    "OrderedResultBuffer",
]
