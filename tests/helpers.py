"""Helpers for building synthetic level files in tests."""
from typing import Iterable, Optional, Sequence, Tuple
import struct

from powerslave.const import HEADER_OFFSET, PALETTE_SIZE, PlaneFlags, SKY_HEIGHT, SKY_WIDTH
from powerslave.level import FixedVector, Map, Plane, Quad, Vertex


__all__ = [
    'SKY_BYTES',
    'pack_vertex', 'pack_quad', 'pack_plane', 'pack_sector', 'pack_header', 'pack_sky',
    'build_level', 'make_plane', 'make_map', 'UNIT_SQUARE',
]

SKY_BYTES = 2 * PALETTE_SIZE + SKY_WIDTH * SKY_HEIGHT

# A unit square on the floor, wound anticlockwise when viewed from above.
UNIT_SQUARE = [
    (0, 0, 0, 16),
    (10, 0, 0, 16),
    (10, 10, 0, 16),
    (0, 10, 0, 16),
]


def pack_vertex(x: int, y: int, z: int, light: int = 0, unknown: int = 0) -> bytes:
    return struct.pack('>hhhBB', x, y, z, light, unknown)


def pack_quad(indices: Sequence[int], unknown1: int = 0, unknown2: int = 0) -> bytes:
    return struct.pack('>4HBB', *indices, unknown1, unknown2)


def pack_plane(
    normal: Tuple[int, int, int] = (0, 0, 32767),
    angle: int = 0,
    flags: int = 0,
    texture_id: int = 0,
    poly_start: int = -1,
    poly_end: int = -1,
    vertex_start: int = 0,
    vertex_end: int = 0,
    poly_vert: Sequence[int] = (0, 1, 2, 3),
    unknowns: Sequence[int] = (0, 0, 0, 0, 0),
    lookup: int = 0,
) -> bytes:
    unk1, unk2, unk3, unk4, unk5 = unknowns
    return struct.pack(
        '>3ii hh HH hh HH 4H hHhh',
        *normal, angle,
        unk1, unk2,
        flags, texture_id,
        poly_start, poly_end,
        vertex_start, vertex_end,
        *poly_vert,
        unk3, lookup, unk4, unk5,
    )


def pack_sector(
    face_start: int = 0,
    face_end: int = 0,
    floor_height: int = 0,
    ceiling_height: int = 100,
    flags: int = 0,
) -> bytes:
    return struct.pack(
        '>8hHHhh',
        1, 2,  # unknown
        3, 4,  # Slopes
        ceiling_height, floor_height,
        face_start, face_end,
        5, flags, 6, 128,
    )


def pack_header(
    sectors: int, planes: int, vertices: int, quads: int,
    unknown: Sequence[int] = (0, ) * 10,
) -> bytes:
    return struct.pack('>14I', sectors, planes, vertices, quads, *unknown)


def pack_sky(palette: Sequence[int] = (), bitmap: Optional[bytes] = None) -> bytes:
    """Build the skybox block. The palette is padded with black."""
    full_palette = list(palette) + [0] * (PALETTE_SIZE - len(palette))
    if bitmap is None:
        bitmap = bytes(SKY_WIDTH * SKY_HEIGHT)
    return struct.pack(f'>{PALETTE_SIZE}H', *full_palette) + bitmap


def build_level(
    sectors: Iterable[bytes] = (),
    planes: Iterable[bytes] = (),
    vertices: Iterable[bytes] = (),
    quads: Iterable[bytes] = (),
    sky: Optional[bytes] = None,
    counts: Optional[Tuple[int, int, int, int]] = None,
) -> bytes:
    """Build a complete level file. Counts can be overridden to produce broken files."""
    sectors = list(sectors)
    planes = list(planes)
    vertices = list(vertices)
    quads = list(quads)
    if sky is None:
        sky = pack_sky()
    if counts is None:
        counts = (len(sectors), len(planes), len(vertices), len(quads))
    return b''.join([
        sky,
        bytes(HEADER_OFFSET - len(sky)),
        pack_header(*counts),
        *sectors, *planes, *vertices, *quads,
    ])


def make_plane(
    normal: Tuple[int, int, int] = (0, 0, 32767),
    flags: PlaneFlags = PlaneFlags.NONE,
    poly_start: int = -1,
    poly_end: int = -1,
    vertex_start: int = 0,
    poly_vert: Tuple[int, int, int, int] = (0, 1, 2, 3),
) -> Plane:
    """Construct a plane directly."""
    return Plane(
        normal=FixedVector(*normal),
        angle=0, unknown1=0, unknown2=0,
        flags=flags,
        texture_id=0,
        poly_start=poly_start,
        poly_end=poly_end,
        vertex_start=vertex_start,
        vertex_end=vertex_start,
        poly_vert=poly_vert,
        unknown3=0, lookup=0, unknown4=0, unknown5=0,
    )


def make_map(
    planes: Sequence[Plane] = (),
    vertices: Sequence[Tuple[int, int, int, int]] = (),
    quads: Sequence[Tuple[int, int, int, int]] = (),
) -> Map:
    """Construct a map directly, without a sky."""
    return Map(
        'test.lev',
        (),
        tuple(planes),
        tuple(Vertex(x, y, z, light) for x, y, z, light in vertices),
        tuple(Quad(indices) for indices in quads),
    )
