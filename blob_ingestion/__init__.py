# control
from blob_ingestion.control import SlotStatus, SlotRecord, SlotRegistry

# planning
from blob_ingestion.planning import SlotRange, FetchTask, SlotPlanner

# execution
from blob_ingestion.execution import (
    Found,
    NotFound,
    Failed,
    FetchOutcome,
    RetryPolicy,
    OrderedResultBuffer,
)

# io
from blob_ingestion.beacon_client import AsyncBeaconClient, SlotFetcher, BeaconApiError
from blob_ingestion.sink import JsonlSink, SinkError

# ingestion
from blob_ingestion.config import IngestionConfig, ConfigError
from blob_ingestion.ingestion import IngestionEngine, RunResult, run_backfill

__all__ = [
    # control
    "SlotStatus",
    "SlotRecord",
    "SlotRegistry",

    # planning
    "SlotRange",
    "FetchTask",
    "SlotPlanner",

    # execution
    "Found",
    "NotFound",
    "Failed",
    "FetchOutcome",
    "RetryPolicy",
    "OrderedResultBuffer",

    # io
    "AsyncBeaconClient",
    "SlotFetcher",
    "BeaconApiError",
    "JsonlSink",
    "SinkError",

    # ingestion
    "IngestionConfig",
    "ConfigError",
    "IngestionEngine",
    "RunResult",
    "run_backfill",
]
