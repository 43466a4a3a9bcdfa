"""
Run configuration for the blob sidecar backfill.

Defaults come from environment variables so the job can be driven the same
way from a shell, a k8s Job manifest or the CLI flags in ``backfill_job``.
"""
import os
from dataclasses import dataclass

from blob_ingestion.planning.slot_planner import SlotRange
from blob_ingestion.execution.retry import RetryPolicy

# -----------------------------
# Environment Variables
# -----------------------------
API_URL = os.getenv("BEACON_API_URL")
CONCURRENCY = int(os.getenv("CONCURRENCY", "20"))
OUTPUT_PATH = os.getenv("OUTPUT_PATH", "blobs-data.jsonl")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))  # seconds, per HTTP call
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "5"))
BACKOFF_BASE = float(os.getenv("BACKOFF_BASE", "0.5"))
BACKOFF_MAX = float(os.getenv("BACKOFF_MAX", "8"))
METRICS_PORT = int(os.getenv("METRICS_PORT", "0")) or None

# first mainnet slot of the Deneb fork; no blob sidecars exist before it
DENEB_SLOT = 8626176


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class IngestionConfig:
    api_url: str
    from_slot: int
    to_slot: int | None = None
    concurrency: int = CONCURRENCY
    output_path: str = OUTPUT_PATH

    request_timeout: float = REQUEST_TIMEOUT
    max_attempts: int = MAX_ATTEMPTS
    backoff_base: float = BACKOFF_BASE
    backoff_max: float = BACKOFF_MAX

    with_block_root: bool = False
    metrics_port: int | None = METRICS_PORT

    def __post_init__(self):
        if not self.api_url:
            raise ConfigError("api_url is required")
        if self.from_slot < 0:
            raise ConfigError(f"from_slot must be >= 0, got {self.from_slot}")
        if self.to_slot is not None and self.to_slot < self.from_slot:
            raise ConfigError(
                f"from_slot {self.from_slot} > to_slot {self.to_slot}"
            )
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.backoff_base < 0 or self.backoff_max < self.backoff_base:
            raise ConfigError(
                f"invalid backoff window {self.backoff_base}..{self.backoff_max}"
            )

    @property
    def slot_range(self) -> SlotRange:
        # single-slot run when no upper bound is given
        to_slot = self.from_slot if self.to_slot is None else self.to_slot
        return SlotRange(self.from_slot, to_slot)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base,
            max_delay=self.backoff_max,
        )
