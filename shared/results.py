"""
Lookup results and errors shared by the local and remote acquisition paths

Lookups return one of three variants so callers can tell "no data" apart
from "something broke":

    Found(value)     - the requested item
    NotFound(reason) - the item does not exist or is not eligible
    Fault(reason)    - the item could not be fetched (network, bad payload, ...)
"""

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Found:
    value: Any

    def __bool__(self):
        return True


@dataclass(frozen=True)
class NotFound:
    reason: str = ""

    def __bool__(self):
        return False


@dataclass(frozen=True)
class Fault:
    reason: str = ""

    def __bool__(self):
        return False


LookupResult = Union[Found, NotFound, Fault]


class UserNotFound(LookupError):
    """The v1 API returned no user for a username"""

    def __init__(self, username: str):
        super().__init__(f"No user named {username}")
        self.username = username


class TokenRefreshFailed(RuntimeError):
    """The OAuth client-credentials exchange failed; v2 calls cannot proceed"""
