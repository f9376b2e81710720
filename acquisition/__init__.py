"""
Beatmap and replay acquisition for the osu! miss analyzer

Remote access to the osu! web API plus the lookup flow that prefers the local
osu!.db over downloading.
"""

from .api import OsuApiClient, UnexpectedResponseShape, get_path
from .downloader import BeatmapDownloader
from .metrics import ApiMetrics
from .rate_limiter import RateLimiter
from .resolver import BeatmapResolver
from .token_manager import Token, TokenManager

__all__ = [
    'OsuApiClient',
    'UnexpectedResponseShape',
    'get_path',
    'BeatmapDownloader',
    'ApiMetrics',
    'RateLimiter',
    'BeatmapResolver',
    'Token',
    'TokenManager'
]
