"""
Beatmap file downloads

Fetches .osu files by beatmap id and keeps retrying through network failures.
Each attempt writes its own .part file beside the target and renames it once
complete, so a file that exists at the final path is always whole. HTTP errors
other than 429 and 5xx are permanent and end the loop.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

import aiohttp

from shared.logger import log_exception
from shared.results import Found, Fault, LookupResult
from .metrics import ApiMetrics


BEATMAP_FILE_URL = "https://osu.ppy.sh/osu/{beatmap_id}"
CHUNK_SIZE = 64 * 1024

# Failures that are retried rather than surfaced
TRANSIENT_NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


def beatmap_file_path(destination_dir: Union[str, Path], beatmap_id: str) -> Path:
    return Path(destination_dir) / f"{beatmap_id}.osu"


class BeatmapDownloader:
    """Streams beatmap files to disk, retrying until they arrive"""

    def __init__(self, session: aiohttp.ClientSession, logger: Optional[logging.Logger] = None,
                 metrics: Optional[ApiMetrics] = None, file_url: str = BEATMAP_FILE_URL,
                 backoff_base: float = 1.0, backoff_max: float = 30.0,
                 max_attempts: Optional[int] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        """
        Args:
            session: HTTP session used for the downloads
            logger: Where failed attempts are logged
            metrics: Optional counters, one event per attempt
            file_url: URL template with a {beatmap_id} placeholder
            backoff_base: Delay after the first failure, doubled after each one
            backoff_max: Upper bound for the delay
            max_attempts: Give up after this many failures (None retries forever)
            sleep: Coroutine used to wait between attempts
        """
        self.session = session
        self.logger = logger or logging.getLogger(__name__)
        self.metrics = metrics
        self.file_url = file_url
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.max_attempts = max_attempts
        self._sleep = sleep

    def backoff_delay(self, failures: int) -> float:
        """Delay before the next attempt after `failures` consecutive failures"""
        if failures < 1:
            return 0.0
        return min(self.backoff_base * (2 ** (failures - 1)), self.backoff_max)

    async def ensure_beatmap_file(self, beatmap_id: str, destination_dir: Union[str, Path]) -> LookupResult:
        """
        Make sure <destination_dir>/<beatmap_id>.osu exists

        Returns immediately if the file is already there. Otherwise downloads it,
        retrying on network failures. Cancelling the calling task stops the loop
        at its next wait.

        Returns:
            Found(Path) once the file exists, Fault if max_attempts ran out or the
            server answered with a permanent HTTP error
        """
        target = beatmap_file_path(destination_dir, beatmap_id)
        failures = 0

        while not target.exists():
            if self.max_attempts is not None and failures >= self.max_attempts:
                self.logger.error(f"Giving up on beatmap {beatmap_id} after {failures} failed attempts")
                return Fault(f"Download of beatmap {beatmap_id} failed {failures} times")

            if failures:
                await self._sleep(self.backoff_delay(failures))
                # Someone else may have written it while we waited
                if target.exists():
                    break

            try:
                await self._download(beatmap_id, target)
            except aiohttp.ClientResponseError as e:
                if not is_retryable_status(e.status):
                    self.logger.error(f"Beatmap {beatmap_id} download rejected with HTTP {e.status}")
                    return Fault(f"Download of beatmap {beatmap_id} failed with HTTP {e.status}")
                failures += 1
                self.logger.warning(f"Beatmap {beatmap_id} download got HTTP {e.status} (attempt {failures})")
            except TRANSIENT_NETWORK_ERRORS as e:
                failures += 1
                log_exception(self.logger, f"Exception caught downloading beatmap {beatmap_id} "
                                           f"(attempt {failures})", e)

        return Found(target)

    async def _download(self, beatmap_id: str, target: Path):
        if self.metrics is not None:
            self.metrics.record('download_beatmap')

        target.parent.mkdir(parents=True, exist_ok=True)
        url = self.file_url.format(beatmap_id=beatmap_id)
        # Unique per attempt; concurrent callers for the same id never share one
        fd, partial_name = tempfile.mkstemp(dir=target.parent, prefix=f"{target.name}.", suffix='.part')
        partial = Path(partial_name)

        try:
            with os.fdopen(fd, 'wb') as f:
                async with self.session.get(url) as response:
                    response.raise_for_status()
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        f.write(chunk)
            try:
                os.replace(partial, target)
            except OSError:
                if not target.exists():
                    raise
                self.logger.debug(f"Beatmap {beatmap_id} was written by another download")
                return
            self.logger.info(f"Downloaded beatmap {beatmap_id} to {target}")
        finally:
            if partial.exists():
                partial.unlink()
