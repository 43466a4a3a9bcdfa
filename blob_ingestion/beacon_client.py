import json
import time
import asyncio
import aiohttp
from dataclasses import dataclass
from typing import Any

from blob_ingestion.logging import log
from blob_ingestion.metrics import MetricsContext
from blob_ingestion.execution.fetch_outcome import FetchOutcome, Found, NotFound, Failed
from blob_ingestion.execution.retry import (
    AttemptState,
    ResponseClass,
    RetryPolicy,
    classify_status,
)

# -----------------------------
# Beacon node REST API
# -----------------------------
BLOB_SIDECARS_PATH = "eth/v1/beacon/blob_sidecars/{slot}"
BLOCK_HEADER_PATH = "eth/v1/beacon/headers/{slot}"
HEADERS_PATH = "eth/v1/beacon/headers"

BEACON_HEADERS = {
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
}


# -----------------------------
# Exceptions
# -----------------------------
class BeaconApiError(Exception): pass


def get_url(base_url: str, path: str) -> str:
    if base_url.endswith("/"):
        return f"{base_url}{path}"
    return f"{base_url}/{path}"


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        # HTTP-date form is not worth supporting here
        return None


@dataclass(frozen=True)
class HttpReply:
    response_class: ResponseClass
    status: int | None = None
    body: Any = None
    error: str | None = None
    retry_after: float | None = None


# -----------------------------
# AsyncBeaconClient
# 一次 GET, 不 retry, 只负责分类
# -----------------------------
class AsyncBeaconClient:
    def __init__(self, api_url: str, timeout: float = 30, metrics: MetricsContext | None = None):
        self.api_url = api_url
        self.timeout = timeout
        self.metrics = metrics or MetricsContext.from_env()
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "AsyncBeaconClient":
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=BEACON_HEADERS,
        )
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def request(self, path: str) -> HttpReply:
        reply = await self._request(path)
        self.metrics.http_reply_inc(reply.response_class.value)
        return reply

    async def _request(self, path: str) -> HttpReply:
        if self._session is None:
            raise RuntimeError("AsyncBeaconClient used outside 'async with'")

        url = get_url(self.api_url, path)
        try:
            async with self._session.get(url) as resp:
                status = resp.status
                raw = await resp.read()
                retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
        except (TimeoutError, asyncio.TimeoutError):
            return HttpReply(
                ResponseClass.NETWORK_ERROR,
                error=f"timeout after {self.timeout}s",
            )
        except aiohttp.ClientError as e:
            return HttpReply(
                ResponseClass.NETWORK_ERROR,
                error=f"{type(e).__name__}: {e}",
            )

        response_class = classify_status(status)

        if response_class is not ResponseClass.OK:
            text = raw[:200].decode("utf-8", errors="replace").strip()
            return HttpReply(
                response_class,
                status=status,
                error=f"HTTP {status}" + (f": {text}" if text else ""),
                retry_after=retry_after,
            )

        # success-empty 等同于 not found
        if not raw.strip():
            return HttpReply(ResponseClass.NOT_FOUND, status=status)

        try:
            body = json.loads(raw)
        except ValueError as e:
            return HttpReply(
                ResponseClass.MALFORMED,
                status=status,
                error=f"malformed JSON body: {e}",
            )

        return HttpReply(ResponseClass.OK, status=status, body=body)

    async def get_head_slot(self) -> int:
        reply = await self.request(HEADERS_PATH)
        if reply.response_class is not ResponseClass.OK:
            raise BeaconApiError(f"head lookup failed: {reply.error or reply.response_class.value}")
        try:
            return int(reply.body["data"][0]["header"]["message"]["slot"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise BeaconApiError("no headers found") from e


# -----------------------------
# SlotFetcher
# retry 状态机: Attempting(n) -> SUCCESS | NOT_FOUND | RETRY -> Attempting(n+1) | FAILED
# -----------------------------
class SlotFetcher:
    """
    Fetch the blob sidecars of one slot and reduce every possible reply to a
    ``Found`` / ``NotFound`` / ``Failed`` outcome.

    Holds no per-slot state, so one instance is shared by all workers.
    """

    def __init__(
        self,
        client: AsyncBeaconClient,
        retry_policy: RetryPolicy | None = None,
        *,
        with_block_root: bool = False,
        metrics: MetricsContext | None = None,
    ):
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.with_block_root = with_block_root
        self.metrics = metrics or client.metrics

    async def fetch(self, slot: int) -> FetchOutcome:
        start = time.perf_counter()
        outcome = await self._fetch(slot)
        self.metrics.fetch_latency_observe(outcome.status, time.perf_counter() - start)
        return outcome

    async def _fetch(self, slot: int) -> FetchOutcome:
        state, reply, attempts = await self._request_with_retry(
            BLOB_SIDECARS_PATH.format(slot=slot), slot
        )
        if state is AttemptState.NOT_FOUND:
            return NotFound(slot=slot)
        if state is AttemptState.FAILED:
            return self._failed(slot, reply, attempts)

        root = None
        if self.with_block_root:
            root_state, root_reply, root_attempts = await self._request_with_retry(
                BLOCK_HEADER_PATH.format(slot=slot), slot
            )
            if root_state is AttemptState.FAILED:
                return self._failed(slot, root_reply, root_attempts, what="block root")
            if root_state is AttemptState.NOT_FOUND:
                root = ""
            else:
                try:
                    root = root_reply.body["data"]["root"]
                except (KeyError, TypeError):
                    return Failed(
                        slot=slot,
                        cause="block root: malformed header response",
                        attempts=root_attempts,
                        http_status=root_reply.status,
                    )

        return Found(slot=slot, payload=reply.body, root=root)

    async def _request_with_retry(self, path: str, slot: int) -> tuple[AttemptState, HttpReply, int]:
        attempt = 1
        while True:
            reply = await self.client.request(path)
            state = self.retry_policy.next_state(attempt, reply.response_class)
            if state is not AttemptState.RETRY:
                return state, reply, attempt

            delay = self.retry_policy.delay_for(attempt, reply.retry_after)
            self.metrics.slot_retry_inc(reply.response_class.value)
            log.warning(
                "⚠️ slot_fetch_retry",
                extra={
                    "slot": slot,
                    "path": path,
                    "attempt": attempt,
                    "response_class": reply.response_class.value,
                    "error": reply.error,
                    "delay_sec": delay,
                },
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _failed(self, slot: int, reply: HttpReply, attempts: int, what: str = "blob sidecars") -> Failed:
        return Failed(
            slot=slot,
            cause=(
                f"{what}: {reply.response_class.value}: {reply.error} "
                f"(attempt {attempts}/{self.retry_policy.max_attempts})"
            ),
            attempts=attempts,
            http_status=reply.status,
        )
