"""
Client for the osu! web API

Two surfaces with different authentication:

- v1: static API key sent as the `k` query parameter
- v2: OAuth bearer token from TokenManager, sent in the Authorization header

Only UserNotFound and TokenRefreshFailed are raised to callers. Any other remote
problem is logged and comes back as NotFound or Fault.
"""

import asyncio
import base64
import binascii
import functools
import logging
from typing import Any, Optional

import aiohttp

from shared.logger import log_exception
from shared.results import Found, NotFound, Fault, LookupResult, UserNotFound
from .metrics import ApiMetrics
from .rate_limiter import RateLimiter
from .token_manager import TokenManager


API_V1_BASE_URL = "https://osu.ppy.sh/api"
API_V2_BASE_URL = "https://osu.ppy.sh/api/v2"

_MISSING = object()


class UnexpectedResponseShape(ValueError):
    """A v2 response did not have the array or fields a score lookup needs"""


def get_path(tree: Any, *keys, default=None) -> Any:
    """
    Walk a parsed JSON tree by keys and list indices

    Args:
        tree: Parsed JSON value
        *keys: Dict keys or list indices, outermost first
        default: Returned when any step is missing

    Returns:
        The value at the path, or default
    """
    value = tree
    for key in keys:
        if isinstance(value, dict) and not isinstance(key, int):
            value = value.get(key, _MISSING)
        elif isinstance(value, list) and isinstance(key, int) and 0 <= key < len(value):
            value = value[key]
        else:
            return default
        if value is _MISSING:
            return default
    return value


def _eligible_score(score: Any) -> LookupResult:
    """Keep scores that have a replay and are not full combos"""
    if not isinstance(score, dict) or 'replay' not in score or 'perfect' not in score:
        raise UnexpectedResponseShape("score is missing 'replay' or 'perfect'")
    if score['replay'] and not score['perfect']:
        return Found(score)
    return NotFound("Score has no replay or is a full combo")


def _first_score(result: Any) -> Any:
    if not isinstance(result, list) or not result:
        raise UnexpectedResponseShape("expected a non-empty score array")
    return result[0]


def _score_at(result: Any, index: int) -> Any:
    scores = get_path(result, 'scores')
    if not isinstance(scores, list) or not 0 <= index < len(scores):
        raise UnexpectedResponseShape(f"no score at scores[{index}]")
    return scores[index]


class OsuApiClient:
    """Issues v1 (key) and v2 (bearer) requests against osu.ppy.sh"""

    def __init__(self, session: aiohttp.ClientSession, api_key: str, token_manager: TokenManager,
                 rate_limiter: Optional[RateLimiter] = None, logger: Optional[logging.Logger] = None,
                 metrics: Optional[ApiMetrics] = None,
                 v1_base_url: str = API_V1_BASE_URL, v2_base_url: str = API_V2_BASE_URL):
        self.session = session
        self.api_key = api_key
        self.token_manager = token_manager
        self.rate_limiter = rate_limiter or RateLimiter()
        self.logger = logger or logging.getLogger(__name__)
        self.metrics = metrics or ApiMetrics()
        self.v1_base_url = v1_base_url.rstrip('/')
        self.v2_base_url = v2_base_url.rstrip('/')

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def request_v1(self, endpoint: str, params: dict) -> Any:
        """GET a v1 endpoint with the API key and return the parsed JSON"""
        query = {'k': self.api_key}
        query.update(params)
        async with self.session.get(f"{self.v1_base_url}/{endpoint}", params=query) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def request_v2(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """
        GET a v2 endpoint with a bearer token and return the parsed JSON

        The body is parsed whatever the status code, since v2 error responses
        are JSON objects the score lookups log as unexpected shapes.

        Raises:
            TokenRefreshFailed: No valid token could be obtained
        """
        token = await self.token_manager.ensure_valid()
        headers = {
            'Authorization': f"Bearer {token.value}",
            'Accept': 'application/json',
        }
        async with self.session.get(f"{self.v2_base_url}/{endpoint}", params=params,
                                    headers=headers) as response:
            return await response.json(content_type=None)

    # ------------------------------------------------------------------
    # Key-authenticated surface (v1)
    # ------------------------------------------------------------------

    async def lookup_user_id(self, username: str) -> LookupResult:
        """
        Resolve a username to its numeric user id

        Returns:
            Found(user_id) or Fault when the request failed

        Raises:
            UserNotFound: The API knows no such user
        """
        self.metrics.record('get_user_v1')
        try:
            result = await self.request_v1('get_user', {'u': username, 'type': 'string'})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log_exception(self.logger, f"get_user request for {username} failed", e)
            return Fault(f"get_user failed: {e}")

        if not isinstance(result, list):
            self.logger.warning(f"get_user returned a non-array response: {result!r}")
            return Fault("get_user returned an unexpected response")
        if len(result) == 0:
            raise UserNotFound(username)

        user_id = get_path(result, 0, 'user_id')
        if user_id is None:
            self.logger.warning(f"get_user response has no user_id: {result!r}")
            return Fault("get_user response has no user_id")
        return Found(str(user_id))

    async def lookup_beatmap_by_hash(self, map_hash: str) -> LookupResult:
        """Resolve a beatmap MD5 hash to its beatmap id"""
        self.metrics.record('get_beatmaps_v1')
        try:
            result = await self.request_v1('get_beatmaps', {'h': map_hash})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log_exception(self.logger, f"get_beatmaps request for {map_hash} failed", e)
            return Fault(f"get_beatmaps failed: {e}")

        beatmap_id = get_path(result, 0, 'beatmap_id')
        if beatmap_id is None:
            if not isinstance(result, list):
                self.logger.warning(f"get_beatmaps returned a non-array response: {result!r}")
            return NotFound(f"No beatmap with hash {map_hash}")
        return Found(str(beatmap_id))

    async def fetch_replay_bytes(self, score_id: str) -> LookupResult:
        """
        Download the raw replay data for an online score

        Waits on the rate limiter first. A response without a `content` field
        means the replay is unavailable, which is NotFound rather than an error.
        """
        self.metrics.record('get_replay_v1')
        await self.rate_limiter.admit_replay_download()
        try:
            result = await self.request_v1('get_replay', {'s': score_id})
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log_exception(self.logger, f"get_replay request for score {score_id} failed", e)
            return Fault(f"get_replay failed: {e}")

        content = get_path(result, 'content')
        if not content:
            return NotFound(f"No replay content for score {score_id}")
        try:
            return Found(base64.b64decode(content, validate=True))
        except (binascii.Error, TypeError, ValueError) as e:
            log_exception(self.logger, f"Replay content for score {score_id} is not valid base64", e)
            return Fault("Replay content is not valid base64")

    # ------------------------------------------------------------------
    # Bearer-authenticated surface (v2)
    # ------------------------------------------------------------------

    async def fetch_user_score(self, user_id: str, score_type: str, index: int,
                               include_failed: bool) -> LookupResult:
        """
        Fetch the score at `index` in one of a user's score lists

        Args:
            user_id: Numeric user id
            score_type: 'best', 'firsts' or 'recent'
            index: Position in the list
            include_failed: Include failed plays (only meaningful for 'recent')

        Returns:
            Found(score) for a replay-backed, non-perfect play, NotFound otherwise
        """
        self.metrics.record('get_user_scores_v2')
        endpoint = f"users/{user_id}/scores/{score_type}"
        params = {
            'mode': 'osu',
            'include_fails': 1 if include_failed else 0,
            'limit': 1,
            'offset': index,
        }
        return await self._fetch_score(endpoint, params, _first_score)

    async def fetch_beatmap_score(self, beatmap_id: str, index: int) -> LookupResult:
        """Fetch the score at `index` on a beatmap's leaderboard"""
        self.metrics.record('get_beatmap_scores_v2')
        endpoint = f"beatmaps/{beatmap_id}/scores"
        return await self._fetch_score(endpoint, None, functools.partial(_score_at, index=index))

    async def _fetch_score(self, endpoint: str, params: Optional[dict], locate) -> LookupResult:
        try:
            result = await self.request_v2(endpoint, params)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            log_exception(self.logger, f"{endpoint} request failed", e)
            return Fault(f"{endpoint} failed: {e}")

        try:
            return _eligible_score(locate(result))
        except UnexpectedResponseShape as e:
            self.logger.warning(f"{endpoint} failed ({e})")
            self.logger.warning(f"{endpoint} response: {result!r}")
            return NotFound(f"No eligible score from {endpoint}")
