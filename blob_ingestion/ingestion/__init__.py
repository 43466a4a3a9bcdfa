from .ingestion_engine import IngestionEngine, RunResult, run_backfill

__all__ = [
    "IngestionEngine",
    "RunResult",
    "run_backfill",
]
