"""
Binary scanner for osu!'s beatmap database (osu!.db)

Walks the record stream one field at a time to find a beatmap by its MD5 hash.
Only the fields needed to build the beatmap's file path are decoded; everything
else is skipped.
"""

import os
import struct
from enum import IntEnum
from pathlib import Path
from typing import BinaryIO, Tuple, Union

from .results import Found, NotFound, LookupResult


DATABASE_FILENAME = 'osu!.db'

# Files written before this revision carry an extra int32 at the start of every record
RECORD_SIZE_FIELD_REMOVED = 20191106

# folder count (int32), account unlocked (bool), unlock date (DateTime ticks)
HEADER_FIXED_BYTES = 13

TIMING_PAIR_SIZE = 14    # int32 mods + double star rating
TIMING_POINT_SIZE = 17   # double bpm + double offset + bool inherited


class GameMode(IntEnum):
    """Ruleset codes stored in each beatmap record"""
    STANDARD = 0
    TAIKO = 1
    CATCH_THE_BEAT = 2
    MANIA = 3


class DatabaseFormatError(ValueError):
    """Raised when the database ends early or holds impossible values"""


class ByteCursor:
    """Forward-only reader over a binary stream with an explicit position"""

    _INT32 = struct.Struct('<i')
    _UINT32 = struct.Struct('<I')

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._position = 0

    @property
    def position(self) -> int:
        return self._position

    def read_fixed(self, n: int) -> bytes:
        data = self._stream.read(n)
        if len(data) != n:
            raise DatabaseFormatError(
                f"Unexpected end of file at offset {self._position}: wanted {n} bytes, got {len(data)}"
            )
        self._position += n
        return data

    def skip(self, n: int):
        if n < 0:
            raise DatabaseFormatError(f"Negative skip of {n} bytes at offset {self._position}")
        if n == 0:
            return
        self._stream.seek(n, os.SEEK_CUR)
        self._position += n

    def read_uint8(self) -> int:
        return self.read_fixed(1)[0]

    def read_int32(self) -> int:
        return self._INT32.unpack(self.read_fixed(4))[0]

    def read_uint32(self) -> int:
        return self._UINT32.unpack(self.read_fixed(4))[0]

    def read_uleb128(self) -> int:
        """Read an unsigned LEB128 integer (7 bits per byte, low bits first)"""
        result = 0
        shift = 0
        while True:
            byte = self.read_uint8()
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result
            shift += 7
            if shift > 35:
                raise DatabaseFormatError(f"ULEB128 value too long at offset {self._position}")

    def read_length_prefixed_string(self) -> str:
        """
        Read an osu! string

        A zero flag byte means an empty string and nothing else follows.
        Any other flag is followed by a ULEB128 length and that many UTF-8 bytes.
        """
        if self.read_uint8() == 0:
            return ""
        length = self.read_uleb128()
        return self.read_fixed(length).decode('utf-8')

    def skip_length_prefixed_string(self):
        if self.read_uint8() == 0:
            return
        self.skip(self.read_uleb128())


class OsuDatabaseScanner:
    """Resolves beatmap file paths from osu!.db without loading the whole file"""

    def __init__(self, database_path: Union[str, Path]):
        self.database_path = Path(database_path)

    @classmethod
    def from_osu_dir(cls, osu_dir: Union[str, Path]) -> 'OsuDatabaseScanner':
        return cls(Path(osu_dir) / DATABASE_FILENAME)

    def exists(self) -> bool:
        return self.database_path.is_file()

    def read_version(self) -> int:
        """Read just the format version from the header"""
        with open(self.database_path, 'rb') as f:
            return ByteCursor(f).read_uint32()

    def resolve_beatmap_path(self, songs_root: Union[str, Path], target_hash: str,
                             mode: GameMode = GameMode.STANDARD) -> LookupResult:
        """
        Find the .osu file for a beatmap hash

        Args:
            songs_root: osu! Songs directory the folder names are relative to
            target_hash: MD5 hash of the beatmap file (hex)
            mode: Ruleset the beatmap must belong to

        Returns:
            Found(Path) for the first matching record, NotFound otherwise
        """
        with open(self.database_path, 'rb') as f:
            cursor = ByteCursor(f)

            version = cursor.read_uint32()
            cursor.skip(HEADER_FIXED_BYTES)
            cursor.skip_length_prefixed_string()  # player name
            record_count = cursor.read_uint32()

            for _ in range(record_count):
                record_hash, file_name, folder_name, record_mode = self._scan_record(cursor, version)
                if record_mode == mode and record_hash == target_hash:
                    return Found(Path(songs_root) / folder_name / file_name)

                # last checked, ignore flags, dim, last modification
                cursor.skip(18)

        return NotFound(f"No {mode.name.lower()} beatmap with hash {target_hash} in {self.database_path}")

    def _scan_record(self, cursor: ByteCursor, version: int) -> Tuple[str, str, str, int]:
        """Read one record up to its folder name, returning (hash, file name, folder name, mode)"""
        if version < RECORD_SIZE_FIELD_REMOVED:
            cursor.skip(4)

        # artist, artist unicode, title, title unicode, creator, difficulty, audio file
        for _ in range(7):
            cursor.skip_length_prefixed_string()

        record_hash = cursor.read_length_prefixed_string()
        file_name = cursor.read_length_prefixed_string()

        # ranked status, object counts, modified date, AR/CS/HP/OD
        cursor.skip(39)

        # star rating tables for standard, taiko, ctb and mania
        for _ in range(4):
            cursor.skip(TIMING_PAIR_SIZE * self._read_count(cursor))

        # drain time, total time, preview time
        cursor.skip(12)
        cursor.skip(TIMING_POINT_SIZE * self._read_count(cursor))

        # beatmap id, set id, thread id, grades, local offset, stack leniency
        cursor.skip(22)
        record_mode = cursor.read_uint8()

        cursor.skip_length_prefixed_string()  # source
        cursor.skip_length_prefixed_string()  # tags
        cursor.skip(2)                        # online offset
        cursor.skip_length_prefixed_string()  # title font
        cursor.skip(10)                       # unplayed, last played
        folder_name = cursor.read_length_prefixed_string()

        return record_hash, file_name, folder_name, record_mode

    @staticmethod
    def _read_count(cursor: ByteCursor) -> int:
        count = cursor.read_int32()
        if count < 0:
            raise DatabaseFormatError(f"Negative block count {count} at offset {cursor.position}")
        return count
