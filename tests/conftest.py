import io
import json
import asyncio
from collections import Counter
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from blob_ingestion.execution import Found, NotFound, Failed
from blob_ingestion.metrics import MetricsContext
from blob_ingestion.sink import JsonlSink


def sidecars_body(slot: int, n: int = 1) -> dict:
    """Shape of a /eth/v1/beacon/blob_sidecars response."""
    return {
        "data": [
            {
                "index": str(i),
                "blob": "0x" + "00" * 8,
                "kzg_commitment": "0x" + "ab" * 48,
                "kzg_proof": "0x" + "cd" * 48,
                "signed_block_header": {
                    "message": {
                        "slot": str(slot),
                        "proposer_index": "1",
                        "parent_root": "0x" + "11" * 32,
                        "state_root": "0x" + "22" * 32,
                        "body_root": "0x" + "33" * 32,
                    },
                    "signature": "0x" + "44" * 96,
                },
                "kzg_commitment_inclusion_proof": ["0x" + "55" * 32] * 2,
            }
            for i in range(n)
        ]
    }


class ScriptedFetcher:
    """
    In-memory fetcher: per-slot outcome factories and delays, with
    instrumentation of concurrent calls.
    """

    def __init__(self, outcomes=None, delays=None, crash=()):
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.crash = set(crash)
        self.active = 0
        self.max_active = 0
        self.started: list[int] = []
        self.completed: list[int] = []

    async def fetch(self, slot: int):
        self.started.append(slot)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(slot, 0))
            if slot in self.crash:
                raise RuntimeError(f"boom {slot}")
            kind = self.outcomes.get(slot, "found")
            if kind == "found":
                return Found(slot=slot, payload=sidecars_body(slot))
            if kind == "not_found":
                return NotFound(slot=slot)
            return Failed(slot=slot, cause=f"server_error: HTTP 500 (slot {slot})", attempts=3, http_status=500)
        finally:
            self.active -= 1
            self.completed.append(slot)


class FailingStream(io.BytesIO):
    """Binary stream whose writes start failing after ``ok_writes`` calls."""

    name = "failing"

    def __init__(self, ok_writes: int):
        super().__init__()
        self.ok_writes = ok_writes

    def write(self, data):
        if self.ok_writes <= 0:
            raise OSError(28, "No space left on device")
        self.ok_writes -= 1
        return super().write(data)


class PartialWriteStream(io.BytesIO):
    """Binary stream that writes only a few bytes of its second write, then fails."""

    name = "partial"

    def __init__(self):
        super().__init__()
        self.writes = 0

    def write(self, data):
        self.writes += 1
        if self.writes > 1:
            super().write(bytes(data[:5]))
            raise OSError(28, "No space left on device")
        return super().write(data)


class FullDiskStream(io.BytesIO):
    """
    Buffered file on a full disk: ``flush`` fails after ``ok_flushes`` calls
    and the first ``close`` fails again with the same error.
    """

    name = "full.jsonl"

    def __init__(self, ok_flushes: int = 1):
        super().__init__()
        self.ok_flushes = ok_flushes
        self.close_attempts = 0

    def flush(self):
        if self.ok_flushes <= 0:
            raise OSError(28, "No space left on device")
        self.ok_flushes -= 1

    def close(self):
        self.close_attempts += 1
        if self.close_attempts == 1:
            raise OSError(28, "No space left on device")
        super().close()


def read_records(sink: JsonlSink) -> list[dict]:
    raw = sink._stream.getvalue().decode("utf-8")
    return [json.loads(line) for line in raw.splitlines()]


@pytest.fixture
def memory_sink():
    return JsonlSink(io.BytesIO(), name="memory")


@pytest.fixture
def metrics():
    return MetricsContext(job="test")


class FakeBeacon:
    """
    Scripted Beacon node. Each script is a list of (status, body[, headers])
    replies served in order; the last one repeats. ``body`` may be a dict
    (JSON), bytes/str (raw) or None (empty).
    """

    def __init__(self):
        self.sidecars: dict[int, list] = {}
        self.headers: dict[int, list] = {}
        self.head: list = [(404, None)]
        self.delay = 0.0
        self.calls = Counter()

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/eth/v1/beacon/blob_sidecars/{slot}", self._sidecars)
        app.router.add_get("/eth/v1/beacon/headers/{slot}", self._header)
        app.router.add_get("/eth/v1/beacon/headers", self._head)
        return app

    async def _sidecars(self, request):
        slot = int(request.match_info["slot"])
        self.calls[("sidecars", slot)] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        script = self.sidecars.get(slot, [(200, sidecars_body(slot))])
        return self._reply(script, self.calls[("sidecars", slot)])

    async def _header(self, request):
        slot = int(request.match_info["slot"])
        self.calls[("header", slot)] += 1
        script = self.headers.get(slot, [(404, None)])
        return self._reply(script, self.calls[("header", slot)])

    async def _head(self, request):
        self.calls["head"] += 1
        return self._reply(self.head, self.calls["head"])

    @staticmethod
    def _reply(script, n):
        status, body, *rest = script[min(n, len(script)) - 1]
        headers = rest[0] if rest else None
        if body is None:
            return web.Response(status=status, headers=headers)
        if isinstance(body, str):
            return web.Response(status=status, text=body, headers=headers)
        if isinstance(body, bytes):
            return web.Response(status=status, body=body, headers=headers)
        return web.json_response(body, status=status, headers=headers)


@asynccontextmanager
async def serve(beacon: FakeBeacon):
    server = TestServer(beacon.app())
    await server.start_server()
    try:
        yield str(server.make_url("/"))
    finally:
        await server.close()
