"""
State Codec - Save strings for sort progress

A save string records everything needed to rebuild a run: when it started,
how long it took (0 while in progress), the choice digits and the filter
selection. Pair history and scores are not stored; they are rebuilt by
replaying the choices against the run's seeded pair stream.

Field layouts (joined with '|', then lz-string compressed for URLs):

    format 1:  [""]|startedAt|finishedMs|choices|optionBits[|subOptionBits...]
    format 2:  v2|skew|startedAt|finishedMs|choices|optionBits[|subOptionBits...]

In format 1 a leading empty field marks the clock-skew flag. Format 2
carries the flag as its own 0/1 field. Both are accepted when decoding.

Version: 2.0
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlsplit

from lzstring import LZString

from catalog import CatalogRegistry, CatalogVersion, SorterError
from filter_engine import FilterSelection

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = '|'
VERSION_HEADER = 'v2'
SUPPORTED_FORMATS = (1, 2)

_CHOICES_PATTERN = re.compile(r'^[012]*$')
_BITS_PATTERN = re.compile(r'^[01]*$')
_NUMBER_PATTERN = re.compile(r'^\d+$')

_lz = LZString()


class DecodeError(SorterError):
    """A save string could not be decompressed or parsed."""


@dataclass
class SaveData:
    """Decoded contents of a save string."""
    started_at: int
    finished_at: int = 0
    choices: str = ''
    option_bits: str = ''
    sub_option_bits: List[str] = field(default_factory=list)
    clock_skew: bool = False

    @property
    def is_finished(self) -> bool:
        return self.finished_at > 0

    def selection_for(self, catalog: CatalogVersion) -> FilterSelection:
        """Filter selection these bits describe for a catalog version."""
        try:
            return FilterSelection.from_bits(catalog, self.option_bits, self.sub_option_bits)
        except ValueError as e:
            raise DecodeError(f"Save does not match catalog {catalog.version_id}: {e}") from e


def compress(text: str) -> str:
    return _lz.compressToEncodedURIComponent(text)


def decompress(encoded: str) -> str:
    """Inverse of compress(). Raises DecodeError on bad input."""
    try:
        text = _lz.decompressFromEncodedURIComponent(encoded)
    except Exception as e:
        raise DecodeError(f"Could not decompress save data: {e}") from e
    if not text:
        raise DecodeError("Save data decompressed to nothing")
    return text


def extract_save_string(value: str) -> str:
    """Accept either a bare save string or a share URL carrying one."""
    value = value.strip()
    if '?' not in value:
        return value
    return urlsplit(value if '://' in value else f"http://{value}").query


class SaveCodec:
    """Encodes and decodes SaveData in one of the supported field layouts."""

    def __init__(self, format_version: int = 1):
        if format_version not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported save format: {format_version}")
        self.format_version = format_version

    def build_fields(self, save: SaveData) -> List[str]:
        body = [
            str(save.started_at),
            str(save.finished_at),
            save.choices,
            save.option_bits + ''.join(FIELD_SEPARATOR + bits for bits in save.sub_option_bits),
        ]
        if self.format_version == 2:
            return [VERSION_HEADER, '1' if save.clock_skew else '0'] + body
        return ([''] if save.clock_skew else []) + body

    def encode(self, save: SaveData) -> str:
        raw = FIELD_SEPARATOR.join(self.build_fields(save))
        return compress(raw)

    def decode(self, encoded: str) -> SaveData:
        """
        Decode a save string.

        Raises:
            DecodeError: the string is not a valid save in either layout
        """
        raw = decompress(extract_save_string(encoded))
        return self.parse_fields(raw.split(FIELD_SEPARATOR))

    def parse_fields(self, fields: List[str]) -> SaveData:
        fields = list(fields)
        clock_skew = False

        if fields and fields[0] == VERSION_HEADER:
            if len(fields) < 2 or fields[1] not in ('0', '1'):
                raise DecodeError("Versioned save is missing its clock-skew field")
            clock_skew = fields[1] == '1'
            fields = fields[2:]
        elif fields and fields[0] == '':
            clock_skew = True
            fields = fields[1:]

        if len(fields) < 4:
            raise DecodeError(f"Expected at least 4 save fields, got {len(fields)}")

        started, finished, choices, option_bits = fields[:4]
        sub_option_bits = fields[4:]

        if not _NUMBER_PATTERN.match(started):
            raise DecodeError(f"Invalid start timestamp: {started!r}")
        if not _NUMBER_PATTERN.match(finished):
            raise DecodeError(f"Invalid finish duration: {finished!r}")
        if not _CHOICES_PATTERN.match(choices):
            raise DecodeError(f"Invalid choice digits: {choices!r}")
        for bits in [option_bits] + sub_option_bits:
            if not _BITS_PATTERN.match(bits):
                raise DecodeError(f"Invalid option bits: {bits!r}")

        return SaveData(
            started_at=int(started),
            finished_at=int(finished),
            choices=choices,
            option_bits=option_bits,
            sub_option_bits=sub_option_bits,
            clock_skew=clock_skew,
        )


def resolve_version(registry: CatalogRegistry, started_at: int, clock_skew: bool = False) -> CatalogVersion:
    """
    Pick the catalog version a save was made against.

    The closest version before the start time is used, or the closest one
    after it when the skew flag is set. A start time outside the range of
    versions resolves to the nearest end.
    """
    before: Optional[CatalogVersion] = None
    after: Optional[CatalogVersion] = None
    exact: Optional[CatalogVersion] = None

    for version in registry:
        released = version.released_at_ms
        if released < started_at:
            before = version
        elif released > started_at:
            if after is None:
                after = version
        else:
            exact = version

    if before is None and after is None:
        chosen = exact
    elif before is None:
        chosen = after
    elif after is None:
        chosen = before
    else:
        chosen = after if clock_skew else before

    logger.debug(f"Resolved start time {started_at} (skew={clock_skew}) to catalog {chosen.version_id}")
    return chosen


def detect_clock_skew(started_at: int, version: CatalogVersion) -> bool:
    """True when a run claims to start before its catalog version existed."""
    # A start exactly at the release instant is not skewed, yet resolve_version() skips exact matches
    return started_at < version.released_at_ms
