from prometheus_client import Counter, Gauge, Histogram

# -----------------------------
# Slots
# -----------------------------
SLOT_RESOLVED = Counter(
    "blob_slots_resolved_total",
    "Slots resolved by terminal outcome",
    ["job", "outcome"],
)

SLOT_RETRIES = Counter(
    "blob_slot_retries_total",
    "Retried attempts by response class",
    ["job", "response_class"],
)

# -----------------------------
# HTTP
# -----------------------------
HTTP_REPLIES = Counter(
    "beacon_http_replies_total",
    "Beacon API replies by response class",
    ["job", "response_class"],
)

FETCH_INFLIGHT = Gauge(
    "blob_fetch_inflight",
    "Current inflight slot fetches",
    ["job"],
)

MAX_FETCH_INFLIGHT = Gauge(
    "blob_fetch_inflight_max",
    "Configured concurrency bound",
    ["job"],
)

FETCH_LATENCY = Histogram(
    "blob_fetch_latency_seconds",
    "Slot fetch latency including retries",
    ["job", "outcome"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
)

# -----------------------------
# Ordering / sink
# -----------------------------
REORDER_BUFFER_SIZE = Gauge(
    "blob_reorder_buffer_size",
    "Resolved slots waiting for a lower slot before they can be written",
    ["job"],
)

LINES_WRITTEN = Counter(
    "blob_lines_written_total",
    "JSON lines written to the output sink",
    ["job"],
)

SINK_FAILURE = Counter(
    "blob_sink_failed_total",
    "Fatal output sink failures",
    ["job"],
)
