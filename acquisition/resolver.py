"""
Beatmap lookup by hash: local osu!.db first, then the web API
"""

import logging
from pathlib import Path
from typing import Optional, Union

from shared.osu_db import OsuDatabaseScanner
from shared.results import Found, LookupResult
from .api import OsuApiClient
from .downloader import BeatmapDownloader


class BeatmapResolver:
    """Finds a beatmap file for a hash, downloading it when it is not installed"""

    def __init__(self, api: OsuApiClient, downloader: BeatmapDownloader,
                 scanner: Optional[OsuDatabaseScanner] = None,
                 songs_root: Optional[Union[str, Path]] = None,
                 logger: Optional[logging.Logger] = None):
        self.api = api
        self.downloader = downloader
        self.scanner = scanner
        self.songs_root = Path(songs_root) if songs_root else None
        self.logger = logger or logging.getLogger(__name__)

    async def resolve(self, map_hash: str, destination_dir: Union[str, Path]) -> LookupResult:
        """
        Get a path to the .osu file with this MD5 hash

        Args:
            map_hash: Beatmap MD5 hash
            destination_dir: Where downloaded beatmaps are stored

        Returns:
            Found(Path), or the NotFound / Fault from the remote lookup
        """
        if self.scanner is not None and self.songs_root is not None and self.scanner.exists():
            local = self.scanner.resolve_beatmap_path(self.songs_root, map_hash)
            if isinstance(local, Found):
                self.logger.debug(f"Beatmap {map_hash} found locally at {local.value}")
                return local
            self.logger.debug(f"Beatmap {map_hash} not in local database, asking the API")

        lookup = await self.api.lookup_beatmap_by_hash(map_hash)
        if not isinstance(lookup, Found):
            return lookup
        return await self.downloader.ensure_beatmap_file(lookup.value, destination_dir)
