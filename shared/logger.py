"""
Logging utilities for the acquisition layer

Provides file-based logging while keeping console output clean. Components take
a logger as a constructor argument; this module only builds and rotates them.
"""

import logging
import os
import sys
from pathlib import Path
from datetime import datetime


LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str, log_file: Path, level=logging.INFO) -> logging.Logger:
    """
    Set up a logger with a file handler

    Args:
        name: Logger name (e.g., 'analyzer')
        log_file: Path to log file
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers if logger already exists
    if logger.handlers:
        return logger

    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


def log_exception(logger: logging.Logger, message: str, exc: Exception):
    """
    Log an exception with full traceback to file

    Args:
        logger: Logger instance
        message: User-friendly error message
        exc: Exception object
    """
    logger.error(f"{message}: {exc}", exc_info=exc)


def get_log_dir() -> Path:
    """Directory holding the analyzer's log and config files"""
    if sys.platform == 'win32':
        appdata = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
        return appdata / 'OsuMissAnalyzer'
    return Path.home() / '.config' / 'OsuMissAnalyzer'


def get_analyzer_logger(level=logging.INFO) -> logging.Logger:
    """Get logger for the acquisition layer"""
    return setup_logger('analyzer', get_log_dir() / 'analyzer.log', level)


def rotate_log_if_needed(log_file: Path, max_size_mb: int = 10, keep_backups: int = 5):
    """
    Rotate log file if it exceeds max size

    Args:
        log_file: Path to log file
        max_size_mb: Maximum size in megabytes before rotation
        keep_backups: Number of rotated files to keep
    """
    if not log_file.exists():
        return

    max_bytes = max_size_mb * 1024 * 1024
    if log_file.stat().st_size <= max_bytes:
        return

    backup_name = f"{log_file.stem}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    log_file.rename(log_file.parent / backup_name)

    backups = sorted(log_file.parent.glob(f"{log_file.stem}_*.log"))
    for old_backup in backups[:-keep_backups] if keep_backups > 0 else backups:
        old_backup.unlink()
