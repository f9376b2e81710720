from __future__ import annotations

import asyncio

import aiohttp
import pytest

from acquisition.downloader import BEATMAP_FILE_URL, BeatmapDownloader, beatmap_file_path
from acquisition.metrics import ApiMetrics
from conftest import FakeResponse
from shared.results import Fault, Found


URL = BEATMAP_FILE_URL.format(beatmap_id="129891")
BODY = b"osu file format v14\r\n\r\n[General]\r\nAudioFilename: audio.mp3\r\n"


def _downloader(session, clock, **kwargs) -> BeatmapDownloader:
    return BeatmapDownloader(session, sleep=clock.sleep, **kwargs)


def test_existing_file_skips_network(session, clock, tmp_path) -> None:
    target = beatmap_file_path(tmp_path, "129891")
    target.write_bytes(b"cached")

    result = asyncio.run(_downloader(session, clock).ensure_beatmap_file("129891", tmp_path))

    assert result == Found(target)
    assert session.calls == []
    assert target.read_bytes() == b"cached"


def test_downloads_into_destination(session, clock, tmp_path) -> None:
    session.add(URL, FakeResponse(body=BODY))
    metrics = ApiMetrics()
    dest = tmp_path / "beatmaps"

    result = asyncio.run(_downloader(session, clock, metrics=metrics).ensure_beatmap_file("129891", dest))

    assert result == Found(dest / "129891.osu")
    assert (dest / "129891.osu").read_bytes() == BODY
    assert list(dest.iterdir()) == [dest / "129891.osu"]
    assert metrics.count("download_beatmap") == 1


def test_retries_transient_failures_until_success(session, clock, tmp_path) -> None:
    session.add(
        URL,
        FakeResponse(error=aiohttp.ClientConnectionError("reset")),
        FakeResponse(status=502),
        FakeResponse(body=BODY, fail_after=0),
        FakeResponse(error=asyncio.TimeoutError()),
        FakeResponse(body=BODY),
    )

    result = asyncio.run(_downloader(session, clock).ensure_beatmap_file("129891", tmp_path))

    assert isinstance(result, Found)
    assert result.value.read_bytes() == BODY
    assert len(session.calls) == 5
    assert clock.sleeps == [1.0, 2.0, 4.0, 8.0]
    assert list(tmp_path.iterdir()) == [result.value]


def test_backoff_is_capped(session, clock) -> None:
    downloader = _downloader(session, clock, backoff_base=1.0, backoff_max=30.0)

    assert [downloader.backoff_delay(n) for n in range(0, 8)] == [0.0, 1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_max_attempts_turns_into_fault(session, clock, tmp_path) -> None:
    session.add(URL, FakeResponse(error=aiohttp.ClientConnectionError("down")))

    result = asyncio.run(_downloader(session, clock, max_attempts=3).ensure_beatmap_file("129891", tmp_path))

    assert isinstance(result, Fault)
    assert len(session.calls) == 3
    assert not beatmap_file_path(tmp_path, "129891").exists()


def test_file_appearing_concurrently_ends_the_loop(session, tmp_path) -> None:
    session.add(URL, FakeResponse(error=aiohttp.ClientConnectionError("down")))
    target = beatmap_file_path(tmp_path, "129891")

    async def sleep_and_let_someone_else_write(seconds):
        target.write_bytes(b"from elsewhere")

    downloader = BeatmapDownloader(session, sleep=sleep_and_let_someone_else_write)
    result = asyncio.run(downloader.ensure_beatmap_file("129891", tmp_path))

    assert result == Found(target)
    assert len(session.calls) == 1
    assert target.read_bytes() == b"from elsewhere"


def test_cancellation_stops_the_retry_loop(session, tmp_path) -> None:
    session.add(URL, FakeResponse(error=aiohttp.ClientConnectionError("down")))
    downloader = BeatmapDownloader(session, backoff_base=0.01, backoff_max=0.01)

    async def scenario():
        task = asyncio.create_task(downloader.ensure_beatmap_file("129891", tmp_path))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert len(session.calls) >= 1
    assert not beatmap_file_path(tmp_path, "129891").exists()


def test_concurrent_downloads_of_the_same_beatmap(session, clock, tmp_path) -> None:
    session.add(URL, FakeResponse(body=BODY))
    downloader = _downloader(session, clock)

    async def scenario():
        return await asyncio.gather(
            downloader.ensure_beatmap_file("129891", tmp_path),
            downloader.ensure_beatmap_file("129891", tmp_path),
            return_exceptions=True,
        )

    results = asyncio.run(scenario())

    target = beatmap_file_path(tmp_path, "129891")
    assert results == [Found(target), Found(target)]
    assert len(session.calls) == 2
    assert target.read_bytes() == BODY
    assert list(tmp_path.iterdir()) == [target]


@pytest.mark.parametrize("status", [401, 403, 404])
def test_client_errors_are_not_retried(session, clock, tmp_path, status) -> None:
    session.add(URL, FakeResponse(status=status))

    result = asyncio.run(_downloader(session, clock).ensure_beatmap_file("129891", tmp_path))

    assert isinstance(result, Fault)
    assert str(status) in result.reason
    assert len(session.calls) == 1
    assert clock.sleeps == []
    assert list(tmp_path.iterdir()) == []


def test_rate_limited_and_server_errors_are_retried(session, clock, tmp_path) -> None:
    session.add(URL, FakeResponse(status=429), FakeResponse(status=503), FakeResponse(body=BODY))

    result = asyncio.run(_downloader(session, clock).ensure_beatmap_file("129891", tmp_path))

    assert result == Found(beatmap_file_path(tmp_path, "129891"))
    assert len(session.calls) == 3
    assert clock.sleeps == [1.0, 2.0]
