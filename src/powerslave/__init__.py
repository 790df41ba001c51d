"""Tools for reading PowerSlave (Sega Saturn) level files.

The main entry point is :py:meth:`Map.load() <powerslave.level.Map.load>`, which decodes a
``.LEV`` file into an immutable :py:class:`~powerslave.level.Map`. The
:py:mod:`~powerslave.geometry` module then turns that into triangles for rendering.
"""
from typing import TYPE_CHECKING, Union
from typing_extensions import TypeAlias
import os as _os
import sys as _sys


__version__: str
if not TYPE_CHECKING:
    try:
        from ._version import __version__
    except ImportError:
        __version__ = '<unknown>'
    else:
        # Discard the now-useless module. Use globals so static analysis ignores this.
        del _sys.modules[globals().pop('_version').__name__]

__all__ = [
    '__version__',
    'StringPath',
    'LevelError', 'TruncatedRecord', 'ResourceExhaustion', 'CorruptGeometry',
    'Vec', 'Map', 'MapHolder', 'PlaneFlags', 'SectorFlags', 'SkyImage',

    # Submodules:
    'binformat', 'const', 'geometry', 'level', 'logger', 'math', 'sky',  # pyright: ignore
]

StringPath: TypeAlias = Union[str, '_os.PathLike[str]']


class LevelError(Exception):
    """Base class for all errors raised while decoding a level."""


class TruncatedRecord(LevelError, EOFError):
    """The file ended before a complete record could be read."""
    def __init__(self, record: str, expected: int, actual: int, offset: int = -1) -> None:
        self.record = record
        self.expected = expected
        self.actual = actual
        self.offset = offset
        where = f' at offset {offset:#x}' if offset >= 0 else ''
        super().__init__(
            f'Truncated {record} record{where}: '
            f'needed {expected} bytes, got {actual}!'
        )


class ResourceExhaustion(LevelError, MemoryError):
    """A header declared more records than we are willing to allocate."""


class CorruptGeometry(LevelError, IndexError):
    """A plane, quad or sector refers to a record which does not exist."""


# Import these, so people can reference 'powerslave.Map' instead of 'powerslave.level.Map'.
# Should be done after other code, so everything's initialised.
# isort: off
from powerslave.math import Vec
from powerslave.const import PlaneFlags, SectorFlags
from powerslave.sky import SkyImage
from powerslave.level import Map, MapHolder
