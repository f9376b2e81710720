"""
Shared modules for the osu! miss analyzer acquisition layer
"""

from .osu_db import (
    ByteCursor,
    DatabaseFormatError,
    GameMode,
    OsuDatabaseScanner
)
from .results import (
    Found,
    NotFound,
    Fault,
    LookupResult,
    UserNotFound,
    TokenRefreshFailed
)

__all__ = [
    'ByteCursor',
    'DatabaseFormatError',
    'GameMode',
    'OsuDatabaseScanner',
    'Found',
    'NotFound',
    'Fault',
    'LookupResult',
    'UserNotFound',
    'TokenRefreshFailed'
]
