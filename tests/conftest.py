from __future__ import annotations

import asyncio
import json
import struct
import sys
from pathlib import Path
from types import SimpleNamespace

import aiohttp
import pytest

# Make the repository root importable without an install
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeContent:
    def __init__(self, body: bytes, fail_after: int | None = None):
        self._body = body
        self._fail_after = fail_after

    async def iter_chunked(self, n):
        for start in range(0, len(self._body), n):
            if self._fail_after is not None and start >= self._fail_after:
                raise aiohttp.ClientPayloadError("connection reset mid-stream")
            # Let other tasks run between chunks, as a real socket read would
            await asyncio.sleep(0)
            yield self._body[start:start + n]


class FakeResponse:
    """Stands in for aiohttp's response context manager"""

    def __init__(self, payload=None, status=200, text=None, body=b"", error=None, fail_after=None):
        self.payload = payload
        self.status = status
        self._text = text
        self._error = error
        self.content = FakeContent(body, fail_after)

    async def __aenter__(self):
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                SimpleNamespace(real_url="http://fake.invalid"), (), status=self.status, message=f"HTTP {self.status}"
            )

    async def json(self, content_type="application/json"):
        if self._text is not None:
            return json.loads(self._text)
        return self.payload


class FakeSession:
    """
    Records requests and answers them from per-URL queues

    Each route holds a list of FakeResponse objects; the last one is repeated
    once the others are used up.
    """

    def __init__(self):
        self.routes: dict[str, list[FakeResponse]] = {}
        self.calls: list[dict] = []

    def add(self, url: str, *responses: FakeResponse):
        self.routes.setdefault(url, []).extend(responses)

    def _next(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        queue = self.routes.get(url)
        if not queue:
            raise AssertionError(f"unexpected {method} {url}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def get(self, url, params=None, headers=None):
        return self._next("GET", url, params=params, headers=headers)

    def post(self, url, data=None):
        return self._next("POST", url, data=data)

    def calls_to(self, url):
        return [c for c in self.calls if c["url"] == url]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# osu!.db builder
# ---------------------------------------------------------------------------

def uleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def osu_string(text: str | None) -> bytes:
    if text is None:
        return b"\x00"
    data = text.encode("utf-8")
    return b"\x0b" + uleb128(len(data)) + data


def build_record(version: int, md5: str, file_name: str, folder: str, mode: int = 0,
                 star_counts=(0, 0, 0, 0), timing_points: int = 0) -> bytes:
    out = bytearray()
    if version < 20191106:
        out += struct.pack("<i", 0x1234)
    for text in ("Artist", "Artist", "Title", None, "Mapper", "Normal", "audio.mp3"):
        out += osu_string(text)
    out += osu_string(md5)
    out += osu_string(file_name)
    out += b"\x01" * 39
    for count in star_counts:
        out += struct.pack("<i", count) + b"\x02" * (14 * count)
    out += b"\x03" * 12
    out += struct.pack("<i", timing_points) + b"\x04" * (17 * timing_points)
    out += b"\x05" * 22
    out += bytes([mode])
    out += osu_string("source") + osu_string("tag one two")
    out += b"\x06" * 2
    out += osu_string(None)
    out += b"\x07" * 10
    out += osu_string(folder)
    out += b"\x08" * 18
    return bytes(out)


def build_database(version: int, records: list[bytes], player: str | None = "player") -> bytes:
    out = bytearray(struct.pack("<I", version))
    out += b"\x00" * 13
    out += osu_string(player)
    out += struct.pack("<I", len(records))
    for record in records:
        out += record
    return bytes(out)


@pytest.fixture
def write_database(tmp_path):
    def _write(version: int, records: list[bytes], player: str | None = "player") -> Path:
        path = tmp_path / "osu!.db"
        path.write_bytes(build_database(version, records, player))
        return path
    return _write
