import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from blob_ingestion.logging import log
from blob_ingestion.metrics import MetricsContext
from blob_ingestion.control import SlotRegistry
from blob_ingestion.planning import SlotRange, SlotPlanner
from blob_ingestion.execution import FetchOutcome, Found, NotFound, Failed, OrderedResultBuffer
from blob_ingestion.sink import JsonlSink, SinkError
from blob_ingestion.beacon_client import AsyncBeaconClient, SlotFetcher

_STOP = object()


class Fetcher(Protocol):
    async def fetch(self, slot: int) -> FetchOutcome: ...


@dataclass
class RunResult:
    total: int
    found: int = 0
    not_found: int = 0
    failed: int = 0
    failures: list[Failed] = field(default_factory=list)
    lines_written: int = 0
    sink_error: str | None = None

    def record(self, outcome: FetchOutcome):
        if isinstance(outcome, Found):
            self.found += 1
        elif isinstance(outcome, NotFound):
            self.not_found += 1
        else:
            self.failed += 1
            self.failures.append(outcome)

    @property
    def resolved(self) -> int:
        return self.found + self.not_found + self.failed

    @property
    def skipped(self) -> int:
        """Slots never fetched because the run was stopped early."""
        return self.total - self.resolved

    @property
    def ok(self) -> bool:
        return self.sink_error is None and self.failed == 0 and self.skipped == 0

    @property
    def exit_code(self) -> int:
        if self.sink_error is not None:
            return 2
        return 0 if self.ok else 1

    def summary(self) -> dict:
        return {
            "total": self.total,
            "found": self.found,
            "not_found": self.not_found,
            "failed": self.failed,
            "skipped": self.skipped,
            "lines_written": self.lines_written,
            "sink_error": self.sink_error,
            "failures": [
                {
                    "slot": f.slot,
                    "cause": f.cause,
                    "attempts": f.attempts,
                    "http_status": f.http_status,
                }
                for f in sorted(self.failures, key=lambda f: f.slot)
            ],
        }


class IngestionEngine:
    """
    Pipeline coordinator for one pass over a slot range.

    A feeder admits slots in ascending order into a task queue, a fixed pool
    of workers fetches them, and every outcome comes back through a single
    results queue. The control loop in ``run`` is the only code touching the
    reorder buffer and the sink.

    Admission takes one of ``concurrency`` permits per slot and the permit is
    given back only when the slot is flushed, so fetches in flight plus
    outcomes waiting in the buffer never exceed ``concurrency``.
    """

    def __init__(
        self,
        *,
        fetcher: Fetcher,
        sink: JsonlSink,
        slot_range: SlotRange,
        concurrency: int,
        metrics: MetricsContext | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        self.fetcher = fetcher
        self.sink = sink
        self.slot_range = slot_range
        self.concurrency = concurrency
        self.metrics = metrics or MetricsContext.from_env()

        # control plane
        self.registry = SlotRegistry()
        self.ordered_buffer = OrderedResultBuffer(slot_range.from_slot)
        self.result = RunResult(total=len(slot_range))

        self._n_workers = min(concurrency, len(slot_range))
        self._fatal = False

    # --------------------------------------------------
    async def run(self) -> RunResult:
        log.info(
            "🚀 ingestion_engine_start",
            extra={
                "from_slot": self.slot_range.from_slot,
                "to_slot": self.slot_range.to_slot,
                "concurrency": self.concurrency,
                "sink": self.sink.name,
            },
        )
        self.metrics.max_fetch_inflight_set(self.concurrency)

        self._tasks: asyncio.Queue = asyncio.Queue()
        self._results: asyncio.Queue = asyncio.Queue()
        self._admission = asyncio.Semaphore(self.concurrency)

        feeder = asyncio.create_task(self._feed())
        workers = [
            asyncio.create_task(self._worker_loop(wid))
            for wid in range(self._n_workers)
        ]

        try:
            # -----------------------------
            # Main control loop
            # -----------------------------
            while self.result.resolved < self.result.total:
                outcome = await self._results.get()
                self._handle_outcome(outcome)

                try:
                    self._flush_ready()
                except SinkError as e:
                    await self._abort(feeder, workers, e)
                    break
            else:
                await asyncio.gather(feeder, *workers)
        finally:
            await self._shutdown(feeder, workers)

        # outcomes arrive in completion order
        self.result.failures.sort(key=lambda f: f.slot)
        log.info("🏁 ingestion_engine_done", extra=self.result.summary())
        return self.result

    # --------------------------------------------------
    async def _feed(self):
        planner = SlotPlanner(self.slot_range)
        while True:
            task = planner.next_task()
            if task is None:
                break

            # backpressure: blocks until a flushed slot gives its permit back.
            # A slow head slot holds back admission while later slots wait in the buffer.
            await self._admission.acquire()
            self.registry.register(task.slot)
            await self._tasks.put(task)

        for _ in range(self._n_workers):
            await self._tasks.put(_STOP)

    # --------------------------------------------------
    async def _worker_loop(self, wid: int):
        while True:
            task = await self._tasks.get()
            if task is _STOP:
                break

            self.registry.mark_inflight(task.slot)
            self.metrics.fetch_inflight_set(self.registry.inflight_count())
            try:
                outcome = await self.fetcher.fetch(task.slot)
            except Exception as e:
                log.exception(
                    "❌ slot_fetch_crashed",
                    extra={"slot": task.slot, "worker": wid},
                )
                outcome = Failed(slot=task.slot, cause=f"{type(e).__name__}: {e}")

            self._results.put_nowait(outcome)

    # --------------------------------------------------
    def _handle_outcome(self, outcome: FetchOutcome):
        self.registry.mark_resolved(outcome)
        self.metrics.fetch_inflight_set(self.registry.inflight_count())
        self.result.record(outcome)
        self.metrics.slot_resolved_inc(outcome.status)

        if isinstance(outcome, Failed):
            log.warning(
                "❌ slot_failed",
                extra={
                    "slot": outcome.slot,
                    "cause": outcome.cause,
                    "attempts": outcome.attempts,
                },
            )

        if not self._fatal:
            self.ordered_buffer.add(outcome)

    # --------------------------------------------------
    def _flush_ready(self):
        ready = self.ordered_buffer.pop_ready()
        self.metrics.reorder_buffer_set(len(self.ordered_buffer))
        if not ready:
            return

        # Failed slots close the gap in the ordering but produce no line
        writable = [o for o in ready if not isinstance(o, Failed)]
        try:
            written = self.sink.write(writable)
        except SinkError:
            self.metrics.sink_failure_inc()
            raise

        self.result.lines_written += written
        self.metrics.lines_written_inc(written)

        for outcome in ready:
            self.registry.release(outcome.slot)
            self._admission.release()

        log.info(
            "✅ range_flushed",
            extra={
                "start": ready[0].slot,
                "end": ready[-1].slot,
                "lines": written,
                "buffered": len(self.ordered_buffer),
                "progress_pct": self.slot_range.progress(self.ordered_buffer.next_slot),
            },
        )

    # --------------------------------------------------
    async def _abort(self, feeder: asyncio.Task, workers: list[asyncio.Task], error: SinkError):
        self._fatal = True
        self.result.sink_error = str(error)
        log.error(
            "❌ sink_failed_stopping",
            extra={"error": str(error), "next_slot": self.ordered_buffer.next_slot},
        )

        # stop admitting
        feeder.cancel()
        await asyncio.gather(feeder, return_exceptions=True)

        # queued but never started: stay PENDING, counted as skipped
        while True:
            try:
                self._tasks.get_nowait()
            except asyncio.QueueEmpty:
                break

        for _ in workers:
            self._tasks.put_nowait(_STOP)

        # drain in-flight fetches so no worker is left behind
        await asyncio.gather(*workers)
        while not self._results.empty():
            self._handle_outcome(self._results.get_nowait())

        log.warning(
            "⚠️ slots_skipped",
            extra={"slots": [r.slot for r in self.registry.active_slots()]},
        )

    # --------------------------------------------------
    async def _shutdown(self, feeder: asyncio.Task, workers: list[asyncio.Task]):
        pending = [t for t in (feeder, *workers) if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


async def run_backfill(config, sink: JsonlSink, *, fetcher: Fetcher | None = None, metrics: MetricsContext | None = None) -> RunResult:
    """
    Wire a Beacon API client, a ``SlotFetcher`` and an ``IngestionEngine``
    from an ``IngestionConfig`` and run one pass over its slot range.
    """
    metrics = metrics or MetricsContext.from_env()

    if fetcher is not None:
        engine = IngestionEngine(
            fetcher=fetcher,
            sink=sink,
            slot_range=config.slot_range,
            concurrency=config.concurrency,
            metrics=metrics,
        )
        return await engine.run()

    async with AsyncBeaconClient(config.api_url, timeout=config.request_timeout, metrics=metrics) as client:
        fetcher = SlotFetcher(
            client,
            config.retry_policy,
            with_block_root=config.with_block_root,
            metrics=metrics,
        )
        engine = IngestionEngine(
            fetcher=fetcher,
            sink=sink,
            slot_range=config.slot_range,
            concurrency=config.concurrency,
            metrics=metrics,
        )
        return await engine.run()
