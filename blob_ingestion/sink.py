import os
from pathlib import Path
from typing import BinaryIO, Iterable

from blob_ingestion.logging import log
from blob_ingestion.execution.fetch_outcome import FetchOutcome, to_line


class SinkError(Exception): pass


class JsonlSink:
    """
    Append-only JSON Lines output.

    Only the ingestion engine's control loop writes here, one flushed prefix
    per ``write`` call, so lines are never interleaved. A write that fails
    part way is truncated back to where it started when the stream allows
    it, so a failed run never leaves half a record behind.
    """

    def __init__(self, stream: BinaryIO, name: str | None = None):
        self._stream = stream
        self.name = name or getattr(stream, "name", "<stream>")
        self.lines_written = 0
        self._closed = False
        self._failed = False

    @classmethod
    def open(cls, path: str | os.PathLike) -> "JsonlSink":
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            needs_newline = _ends_without_newline(path)
            # unbuffered: every write reaches the file before write() returns
            stream = open(path, "ab", buffering=0)
        except OSError as e:
            raise SinkError(f"cannot open {path}: {e}") from e

        sink = cls(stream, name=str(path))
        if needs_newline:
            # earlier run stopped mid-line; keep our first record on its own line
            log.warning("⚠️ sink_missing_trailing_newline", extra={"path": str(path)})
            try:
                sink._write_bytes(b"\n")
            except SinkError:
                sink.close()
                raise
        return sink

    @property
    def failed(self) -> bool:
        return self._failed

    def write(self, outcomes: Iterable[FetchOutcome]) -> int:
        lines = [to_line(o) for o in outcomes]
        if not lines:
            return 0
        self._write_bytes("".join(lines).encode("utf-8"))
        self.lines_written += len(lines)
        return len(lines)

    def _write_bytes(self, data: bytes):
        if self._closed:
            raise SinkError(f"{self.name} is closed")

        offset = self._tell()
        try:
            view = memoryview(data)
            while view:
                n = self._stream.write(view)
                view = view[n:]
            self._stream.flush()
        except (OSError, ValueError) as e:
            self._failed = True
            self._rollback(offset)
            raise SinkError(f"write to {self.name} failed: {e}") from e

    def _tell(self) -> int | None:
        try:
            return self._stream.tell()
        except (OSError, ValueError):
            # pipes and other unseekable streams
            return None

    def _rollback(self, offset: int | None):
        if offset is None:
            return
        try:
            self._stream.truncate(offset)
        except (OSError, ValueError) as e:
            log.warning(
                "⚠️ sink_rollback_failed",
                extra={"path": self.name, "offset": offset, "error": str(e)},
            )

    def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        except OSError as e:
            if self._failed:
                # the write failure was already reported; closing repeats it
                log.warning(
                    "⚠️ sink_close_after_failure",
                    extra={"path": self.name, "error": str(e)},
                )
                return
            raise SinkError(f"close of {self.name} failed: {e}") from e

    def __enter__(self) -> "JsonlSink":
        return self

    def __exit__(self, *exc):
        self.close()


def _ends_without_newline(path: Path) -> bool:
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return False
    if size == 0:
        return False
    with open(path, "rb") as f:
        f.seek(size - 1)
        return f.read(1) != b"\n"
