"""
Backfill Beacon chain blob sidecars for a slot range into a JSON Lines file.

    blob-backfill --api-url http://localhost:5052 --from-slot 8626176 --to-slot 8626300

Prints the run summary as JSON on stdout. Exit status is 0 when every slot
resolved to found / not found and all lines were written, 1 when some slots
failed, 2 on configuration, API or output failures.
"""
import json
import asyncio
import argparse
import dataclasses
from prometheus_client import start_http_server

from blob_ingestion import config as cfg
from blob_ingestion.config import IngestionConfig, ConfigError, DENEB_SLOT
from blob_ingestion.logging import log
from blob_ingestion.beacon_client import AsyncBeaconClient, BeaconApiError
from blob_ingestion.sink import JsonlSink, SinkError
from blob_ingestion.ingestion import RunResult, run_backfill


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blob-backfill",
        description="Download blob sidecars for a range of slots into a JSON Lines file.",
    )
    parser.add_argument("--api-url", default=cfg.API_URL,
                        help="Beacon node REST API base URL (env BEACON_API_URL).")
    parser.add_argument("-f", "--from-slot", type=int, required=True,
                        help="First slot (inclusive).")
    parser.add_argument("-t", "--to-slot", type=int, default=None,
                        help="Last slot (inclusive). Defaults to --from-slot.")
    parser.add_argument("--to-head", action="store_true",
                        help="Without --to-slot, run up to the current head slot.")
    parser.add_argument("-c", "--concurrency", type=int, default=cfg.CONCURRENCY,
                        help="Max concurrent slot fetches (default %(default)s).")
    parser.add_argument("-o", "--output", default=cfg.OUTPUT_PATH,
                        help="JSON Lines file to append to (default %(default)s).")
    parser.add_argument("--timeout", type=float, default=cfg.REQUEST_TIMEOUT,
                        help="Per-request timeout in seconds (default %(default)s).")
    parser.add_argument("--max-attempts", type=int, default=cfg.MAX_ATTEMPTS,
                        help="Attempts per request before a slot fails (default %(default)s).")
    parser.add_argument("--with-block-root", action="store_true",
                        help="Also record the block root of every slot with blobs.")
    parser.add_argument("--deneb-floor", action="store_true",
                        help=f"Start no earlier than the Deneb fork slot {DENEB_SLOT}.")
    parser.add_argument("--metrics-port", type=int, default=cfg.METRICS_PORT,
                        help="Expose Prometheus metrics on this port.")
    return parser


def build_config(args: argparse.Namespace) -> IngestionConfig:
    from_slot = args.from_slot
    if args.deneb_floor and from_slot < DENEB_SLOT:
        log.warning(
            "⚠️ from_slot_before_deneb",
            extra={"requested": from_slot, "using": DENEB_SLOT},
        )
        from_slot = DENEB_SLOT

    return IngestionConfig(
        api_url=args.api_url,
        from_slot=from_slot,
        to_slot=args.to_slot,
        concurrency=args.concurrency,
        output_path=args.output,
        request_timeout=args.timeout,
        max_attempts=args.max_attempts,
        with_block_root=args.with_block_root,
        metrics_port=args.metrics_port,
    )


async def resolve_head(config: IngestionConfig) -> IngestionConfig:
    async with AsyncBeaconClient(config.api_url, timeout=config.request_timeout) as client:
        head = await client.get_head_slot()

    log.info("📌 head_slot", extra={"head_slot": head})
    if head < config.from_slot:
        raise ConfigError(f"head slot {head} is below from_slot {config.from_slot}")
    return dataclasses.replace(config, to_slot=head)


async def run_job(config: IngestionConfig, *, to_head: bool = False) -> RunResult:
    if to_head and config.to_slot is None:
        config = await resolve_head(config)

    sink = JsonlSink.open(config.output_path)
    try:
        result = await run_backfill(config, sink)
    except BaseException:
        sink.close()
        raise

    # the run summary outlives a failing close; it is what the caller reports
    try:
        sink.close()
    except SinkError as e:
        log.error("❌ sink_close_failed", extra={"path": sink.name, "error": str(e)})
        if result.sink_error is None:
            result.sink_error = str(e)
    return result


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        parser.error(str(e))

    if config.metrics_port:
        start_http_server(config.metrics_port)

    try:
        result = asyncio.run(run_job(config, to_head=args.to_head))
    except (ConfigError, BeaconApiError, SinkError) as e:
        log.error("❌ backfill_job_failed", extra={"error_type": type(e).__name__, "error": str(e)})
        print(json.dumps({"error": str(e)}))
        return 2

    print(json.dumps(result.summary()))
    return result.exit_code
