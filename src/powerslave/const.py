"""Constants describing the level file format, along with the flag enums."""
from typing import Any, Final, MutableMapping
from enum import Flag
import functools
import operator
import sys


__all__ = [
    'add_unknown',
    'PlaneFlags', 'SectorFlags',
    'HEADER_OFFSET', 'SKY_WIDTH', 'SKY_HEIGHT', 'PALETTE_SIZE',
    'COORD_SCALE', 'NORMAL_SCALE', 'MAX_LIGHT',
]

#: Absolute position of the file header. Everything between the skybox and this is unused.
HEADER_OFFSET: Final = 0x2070C
SKY_WIDTH: Final = 512
SKY_HEIGHT: Final = 256
PALETTE_SIZE: Final = 256
#: Vertex coordinates are divided by this to produce world units.
COORD_SCALE: Final = 10.0
#: Fixed-point normal components are scaled by the largest signed 16-bit value.
NORMAL_SCALE: Final = 32767.0
#: Light levels above this are clamped.
MAX_LIGHT: Final = 16


def add_unknown(ns: MutableMapping[str, Any], bits: int = 32) -> None:
    """Add dummy members for :external:class:`enum.Flag` to allow all bits to be set.

    It should be called at the end of the class body. The format has many flag bits with no
    known meaning, this ensures they are preserved instead of raising errors when decoded.
    All existing bits will be skipped.

    :param ns: The class namespace to add members to. This should be set to \
        :external:func:`locals()` or :external:func:`vars()`.
    :param bits: The width of the flag field.
    """

    # Don't alias bits we already have.
    used_bits = functools.reduce(
        operator.or_,
        # Skip dunder names added to the namespace, like __firstlineno__.
        [
            value for name, value in ns.items()
            if not name.startswith('__') and isinstance(value, int)
        ],
        0,
    )
    for i in range(bits):
        bit = 1 << i
        if not bit & used_bits:
            # We don't have to stick to var naming rules, so just name it
            # after the number. Intern so repeated calls share strings.
            ns[sys.intern(str(i))] = bit


class PlaneFlags(Flag):
    """Flags set on each plane, describing how it behaves."""
    NONE = 0
    SOLID = 0x0001
    WATER = 0x0002
    TRIGGER = 0x0008
    INVISIBLE = 0x0010
    BREAKABLE = 0x0080
    TOGGLE = 0x0100  #: Edges of triggers, mostly. These have no light level.
    PORTAL = 0x0200
    SKY = 0x4000
    LAVA = 0x8000

    add_unknown(locals(), bits=16)


class SectorFlags(Flag):
    """Sector flags. None of these have been identified yet."""
    NONE = 0

    add_unknown(locals(), bits=16)
