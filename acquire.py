"""
Fetch beatmaps, scores and replays for the miss analyzer

Usage:
    python acquire.py beatmap 7e7e2a6b3f0d1c1e2b8f0a9d5c4e3b21
    python acquire.py user-score someplayer --type recent --failed
    python acquire.py beatmap-score 129891 --index 3
    python acquire.py replay 2177560145 --out replay.bin
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import aiohttp
import colorama

from acquisition import (
    ApiMetrics,
    BeatmapDownloader,
    BeatmapResolver,
    OsuApiClient,
    RateLimiter,
    TokenManager,
    get_path,
)
from acquisition.config_manager import ConfigManager
from shared.console import print_success, print_info, print_warning, print_error, print_header, format_key_value
from shared.logger import get_analyzer_logger, get_log_dir, rotate_log_if_needed
from shared.osu_db import OsuDatabaseScanner
from shared.results import Found, NotFound, TokenRefreshFailed, UserNotFound


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="osu! beatmap and replay acquisition")
    parser.add_argument('--config', type=Path, help="Path to analyzer_config.json")
    parser.add_argument('--stats', action='store_true', help="Print API call counters on exit")
    sub = parser.add_subparsers(dest='command', required=True)

    beatmap = sub.add_parser('beatmap', help="Resolve a beatmap file from its MD5 hash")
    beatmap.add_argument('hash')
    beatmap.add_argument('--dest', type=Path, help="Download folder (default: beatmap cache)")

    user_score = sub.add_parser('user-score', help="Find a user's replay-backed, non-FC score")
    user_score.add_argument('username')
    user_score.add_argument('--type', default='best', choices=['best', 'firsts', 'recent'])
    user_score.add_argument('--index', type=int, default=0)
    user_score.add_argument('--failed', action='store_true', help="Include failed plays")

    beatmap_score = sub.add_parser('beatmap-score', help="Find a leaderboard score on a beatmap")
    beatmap_score.add_argument('beatmap_id')
    beatmap_score.add_argument('--index', type=int, default=0)

    replay = sub.add_parser('replay', help="Download replay data for an online score")
    replay.add_argument('score_id')
    replay.add_argument('--out', type=Path, required=True)

    return parser


def report(result) -> int:
    """Print a lookup result and turn it into an exit code"""
    if isinstance(result, Found):
        return 0
    if isinstance(result, NotFound):
        print_warning(result.reason or "Nothing found")
    else:
        print_error(result.reason or "Request failed")
    return 1


def print_score(score: dict):
    print_header("SCORE")
    for key in ('id', 'user_id', 'score', 'accuracy', 'max_combo', 'rank', 'created_at'):
        if key in score:
            print(format_key_value(key, score[key]))
    beatmap_id = get_path(score, 'beatmap', 'id')
    if beatmap_id is not None:
        print(format_key_value('beatmap_id', beatmap_id))


async def run(args, config: ConfigManager, logger: logging.Logger, metrics: ApiMetrics) -> int:
    timeout = aiohttp.ClientTimeout(total=config.get('http.timeout_seconds', 30))
    async with aiohttp.ClientSession(timeout=timeout) as session:
        tokens = TokenManager(session, config.get('osu_api.client_id', ''),
                              config.get('osu_api.client_secret', ''),
                              logger=logger, metrics=metrics)
        limiter = RateLimiter(config.get('rate_limit.replay_downloads', 10),
                              config.get('rate_limit.window_seconds', 60), logger=logger)
        api = OsuApiClient(session, config.get('osu_api.api_key', ''), tokens,
                           rate_limiter=limiter, logger=logger, metrics=metrics)

        if args.command == 'beatmap':
            downloader = BeatmapDownloader(
                session, logger=logger, metrics=metrics,
                backoff_base=config.get('downloads.backoff_base_seconds', 1.0),
                backoff_max=config.get('downloads.backoff_max_seconds', 30.0),
                max_attempts=config.get('downloads.max_attempts'),
            )
            osu_dir = config.get('paths.osu_dir')
            scanner = OsuDatabaseScanner.from_osu_dir(osu_dir) if osu_dir else None
            resolver = BeatmapResolver(api, downloader, scanner, config.songs_dir(), logger=logger)
            dest = args.dest or Path(config.get('paths.beatmap_cache_dir', 'beatmaps'))

            result = await resolver.resolve(args.hash.lower(), dest)
            if result:
                print_success(f"Beatmap: {result.value}")
            return report(result)

        if args.command == 'user-score':
            user = await api.lookup_user_id(args.username)
            if not user:
                return report(user)
            result = await api.fetch_user_score(user.value, args.type, args.index, args.failed)
        elif args.command == 'beatmap-score':
            result = await api.fetch_beatmap_score(args.beatmap_id, args.index)
        else:
            result = await api.fetch_replay_bytes(args.score_id)
            if result:
                args.out.write_bytes(result.value)
                print_success(f"Saved {len(result.value)} bytes to {args.out}")
            return report(result)

        if result:
            print_score(result.value)
        return report(result)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    colorama.just_fix_windows_console()

    config = ConfigManager(args.config)
    config.load()

    log_file = get_log_dir() / 'analyzer.log'
    if config.get('logging.rotation.enabled', True):
        rotate_log_if_needed(log_file, config.get('logging.rotation.max_size_mb', 10),
                             config.get('logging.rotation.keep_backups', 5))
    logger = get_analyzer_logger(getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO))
    metrics = ApiMetrics()

    try:
        code = asyncio.run(run(args, config, logger, metrics))
    except UserNotFound as e:
        print_error(str(e))
        code = 1
    except TokenRefreshFailed as e:
        print_error(f"Could not authenticate with the osu! API: {e}")
        print_info("Check osu_api.client_id and osu_api.client_secret in your config")
        code = 1
    except KeyboardInterrupt:
        print_warning("Cancelled")
        code = 130

    if args.stats:
        print_header("API CALLS")
        print(json.dumps(metrics.snapshot(), indent=2))

    return code


if __name__ == '__main__':
    sys.exit(main())
