# blob_ingestion/metrics/context.py
import os
from dataclasses import dataclass

from . import definitions as m


@dataclass(frozen=True)
class MetricsContext:
    job: str

    # ===== slot helpers =====
    def slot_resolved_inc(self, outcome: str):
        m.SLOT_RESOLVED.labels(job=self.job, outcome=outcome).inc()

    def slot_retry_inc(self, response_class: str):
        m.SLOT_RETRIES.labels(job=self.job, response_class=response_class).inc()

    def fetch_latency_observe(self, outcome: str, seconds: float):
        m.FETCH_LATENCY.labels(job=self.job, outcome=outcome).observe(seconds)

    # ===== HTTP helpers =====
    def http_reply_inc(self, response_class: str):
        m.HTTP_REPLIES.labels(job=self.job, response_class=response_class).inc()

    def fetch_inflight_set(self, v: int):
        m.FETCH_INFLIGHT.labels(job=self.job).set(v)

    def max_fetch_inflight_set(self, v: int):
        m.MAX_FETCH_INFLIGHT.labels(job=self.job).set(v)

    # ===== ordering / sink helpers =====
    def reorder_buffer_set(self, v: int):
        m.REORDER_BUFFER_SIZE.labels(job=self.job).set(v)

    def lines_written_inc(self, n: int = 1):
        m.LINES_WRITTEN.labels(job=self.job).inc(n)

    def sink_failure_inc(self):
        m.SINK_FAILURE.labels(job=self.job).inc()

    @classmethod
    def from_env(cls) -> "MetricsContext":
        return cls(job=os.getenv("JOB_NAME", "blob_backfill"))
