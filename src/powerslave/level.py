"""Read PowerSlave ``.LEV`` level files.

A level consists of the skybox, a header at a fixed position, then four arrays of records:
sectors, planes, vertices and quads. Every multi-byte value is big-endian.
Data is read all at once, producing an immutable :py:class:`Map`.
"""
from typing import (
    IO, Any, Callable, Final, Generator, List, Optional, Sequence, Tuple, TypeVar,
)
from types import TracebackType
import contextlib
import os
import threading

import attrs

from powerslave import CorruptGeometry, ResourceExhaustion, StringPath, logger
from powerslave.binformat import FixedArray, Layout, Nested, Primitive, load_many, load_one
from powerslave.const import HEADER_OFFSET, PlaneFlags, SectorFlags
from powerslave.sky import SkyImage, read_sky


__all__ = [
    'FileHeader', 'FixedVector', 'Vertex', 'Quad', 'Plane', 'Sector',
    'HEADER_LAYOUT', 'VECTOR_LAYOUT', 'VERTEX_LAYOUT', 'QUAD_LAYOUT',
    'PLANE_LAYOUT', 'SECTOR_LAYOUT',
    'Map', 'MapHolder', 'MAX_RECORDS',
]

LOGGER = logger.get_logger(__name__)
T = TypeVar('T')

#: The largest count we accept for any of the record arrays.
MAX_RECORDS: Final = 1 << 20
#: Number of unidentified integers after the counts in the header.
HEADER_UNKNOWN_COUNT: Final = 10

INT16 = Primitive('h')
UINT16 = Primitive('H')
INT32 = Primitive('i')
UINT32 = Primitive('I')
UINT8 = Primitive('B')


@attrs.frozen
class FileHeader:
    """The header, which specifies the size of each array."""
    sector_count: int
    plane_count: int
    vertex_count: int
    quad_count: int
    unknown: Tuple[int, ...]


@attrs.frozen
class FixedVector:
    """A fixed-point vector. Each axis is in the range ``[-1, 1]``, scaled by 32767."""
    x: int
    y: int
    z: int


@attrs.frozen
class Vertex:
    """A position in the level, with ``z`` as the up axis."""
    x: int
    y: int
    z: int
    light: int  #: Only 0-16 is meaningful, higher values are clamped.
    unknown1: int = 0

    @property
    def coords(self) -> Tuple[int, int, int]:
        """The integer position."""
        return self.x, self.y, self.z


@attrs.frozen
class Quad:
    """A tile of a plane. Indices are relative to the plane's :py:attr:`~Plane.vertex_start`."""
    indices: Tuple[int, int, int, int]
    unknown1: int = 0
    unknown2: int = 0


@attrs.frozen
class Plane:
    """A wall, floor or ceiling.

    If :py:attr:`poly_start` and :py:attr:`poly_end` are set, the plane is drawn using the
    quads in that (inclusive) range. Otherwise, the plane is a single quad formed from
    :py:attr:`poly_vert`.
    """
    normal: FixedVector
    angle: int
    unknown1: int
    unknown2: int
    flags: PlaneFlags = attrs.field(converter=PlaneFlags)
    texture_id: int  #: Mostly zero, meaning unknown.
    poly_start: int
    poly_end: int
    vertex_start: int
    vertex_end: int
    poly_vert: Tuple[int, int, int, int]
    unknown3: int
    lookup: int  #: Identifier of some lookup table, purpose unknown.
    unknown4: int
    unknown5: int

    @property
    def is_tiled(self) -> bool:
        """Check if this plane is drawn using quads, not its own vertices."""
        return self.poly_start != -1 and self.poly_end != -1

    @property
    def quad_range(self) -> range:
        """The indexes of the quads used by this plane. This is empty if not tiled."""
        if not self.is_tiled:
            return range(0)
        return range(min(self.poly_start, self.poly_end), max(self.poly_start, self.poly_end) + 1)


@attrs.frozen
class Sector:
    """A convex region, bounded by an inclusive range of planes."""
    unknown1: int
    unknown2: int
    ceiling_slope: int
    floor_slope: int
    ceiling_height: int
    floor_height: int
    face_start: int
    face_end: int
    unknown3: int
    flags: SectorFlags = attrs.field(converter=SectorFlags)
    unknown4: int
    unknown5: int  # Almost always 128.

    @property
    def face_range(self) -> range:
        """The indexes of the planes bounding this sector.

        Like plane quad ranges, -1 at either end means the sector has no planes.
        """
        if self.face_start < 0 or self.face_end < 0:
            return range(0)
        return range(min(self.face_start, self.face_end), max(self.face_start, self.face_end) + 1)


HEADER_LAYOUT: Final = Layout('FileHeader', [
    ('sector_count', UINT32),
    ('plane_count', UINT32),
    ('vertex_count', UINT32),
    ('quad_count', UINT32),
    ('unknown', FixedArray(UINT32, HEADER_UNKNOWN_COUNT)),
], FileHeader)

VECTOR_LAYOUT: Final = Layout('FixedVector', [
    ('x', INT32),
    ('y', INT32),
    ('z', INT32),
], FixedVector)

VERTEX_LAYOUT: Final = Layout('Vertex', [
    ('x', INT16),
    ('y', INT16),
    ('z', INT16),
    ('light', UINT8),
    ('unknown1', UINT8),
], Vertex)

QUAD_LAYOUT: Final = Layout('Quad', [
    ('indices', FixedArray(UINT16, 4)),
    ('unknown1', UINT8),
    ('unknown2', UINT8),
], Quad)

PLANE_LAYOUT: Final = Layout('Plane', [
    ('normal', Nested(VECTOR_LAYOUT)),
    ('angle', INT32),
    ('unknown1', INT16),
    ('unknown2', INT16),
    ('flags', UINT16),
    ('texture_id', UINT16),
    ('poly_start', INT16),
    ('poly_end', INT16),
    ('vertex_start', UINT16),
    ('vertex_end', UINT16),
    ('poly_vert', FixedArray(UINT16, 4)),
    ('unknown3', INT16),
    ('lookup', UINT16),
    ('unknown4', INT16),
    ('unknown5', INT16),
], Plane)

SECTOR_LAYOUT: Final = Layout('Sector', [
    ('unknown1', INT16),
    ('unknown2', INT16),
    ('ceiling_slope', INT16),
    ('floor_slope', INT16),
    ('ceiling_height', INT16),
    ('floor_height', INT16),
    ('face_start', INT16),
    ('face_end', INT16),
    ('unknown3', UINT16),
    ('flags', UINT16),
    ('unknown4', INT16),
    ('unknown5', INT16),
], Sector)


def _lookup(items: Sequence[T], index: int, kind: str) -> T:
    """Index a record array, raising CorruptGeometry if out of range."""
    if 0 <= index < len(items):
        return items[index]
    raise CorruptGeometry(f'{kind} index {index} is out of range, only {len(items)} exist!')


@attrs.frozen(eq=False, repr=False)
class Map:
    """A loaded level.

    The only mutable part is the sky image, which must be released via :py:meth:`close`
    (or by using the map as a context manager) once the map is no longer needed.
    """
    filename: str
    sectors: Tuple[Sector, ...]
    planes: Tuple[Plane, ...]
    vertices: Tuple[Vertex, ...]
    quads: Tuple[Quad, ...]
    sky: Optional[SkyImage] = None

    def __repr__(self) -> str:
        return (
            f'<Map {os.path.basename(self.filename)!r}: {len(self.sectors)} sectors, '
            f'{len(self.planes)} planes, {len(self.vertices)} vertices, {len(self.quads)} quads>'
        )

    @classmethod
    def load(cls, filename: StringPath, *, max_records: int = MAX_RECORDS) -> 'Map':
        """Load a level from disk.

        :raises OSError: If the file could not be opened or read.
        :raises TruncatedRecord: If the file ends too early.
        :raises ResourceExhaustion: If the header specifies more than ``max_records`` of something.
        """
        filename = os.fspath(filename)
        with open(filename, 'rb') as file:
            return cls.read(file, filename, max_records=max_records)

    @classmethod
    def read(
        cls,
        file: IO[bytes],
        filename: str = '<unknown>',
        *,
        max_records: int = MAX_RECORDS,
    ) -> 'Map':
        """Read a level from an open, seekable file.

        Either the whole map is returned, or an exception is raised. In that case the sky image
        has been closed already.
        """
        with logger.context(os.path.basename(filename)):
            sky: Optional[SkyImage] = None
            try:
                sky = read_sky(file)

                # The space between the sky and header is unused.
                file.seek(HEADER_OFFSET)
                header = load_one(HEADER_LAYOUT, file)
                LOGGER.debug(
                    'Header: {} sectors, {} planes, {} vertices, {} quads',
                    header.sector_count, header.plane_count,
                    header.vertex_count, header.quad_count,
                )
                for name, count in [
                    ('sectors', header.sector_count),
                    ('planes', header.plane_count),
                    ('vertices', header.vertex_count),
                    ('quads', header.quad_count),
                ]:
                    if count > max_records:
                        raise ResourceExhaustion(
                            f'Header specifies {count} {name}, '
                            f'more than the limit of {max_records}!'
                        )

                sectors = tuple(load_many(SECTOR_LAYOUT, file, header.sector_count))
                planes = tuple(load_many(PLANE_LAYOUT, file, header.plane_count))
                vertices = tuple(load_many(VERTEX_LAYOUT, file, header.vertex_count))
                quads = tuple(load_many(QUAD_LAYOUT, file, header.quad_count))
            except BaseException:
                if sky is not None:
                    sky.close()
                raise
            LOGGER.info(
                'Loaded {}: {} sectors, {} planes, {} vertices, {} quads',
                filename, len(sectors), len(planes), len(vertices), len(quads),
            )
        return cls(filename, sectors, planes, vertices, quads, sky)

    def close(self) -> None:
        """Release the sky image."""
        if self.sky is not None:
            self.sky.close()

    def __enter__(self) -> 'Map':
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_value: Optional[BaseException],
        tback: Optional[TracebackType],
    ) -> None:
        self.close()

    def vertex(self, index: int) -> Vertex:
        """Fetch a vertex by index, raising CorruptGeometry if it doesn't exist."""
        return _lookup(self.vertices, index, 'Vertex')

    def quad(self, index: int) -> Quad:
        """Fetch a quad by index, raising CorruptGeometry if it doesn't exist."""
        return _lookup(self.quads, index, 'Quad')

    def plane(self, index: int) -> Plane:
        """Fetch a plane by index, raising CorruptGeometry if it doesn't exist."""
        return _lookup(self.planes, index, 'Plane')

    def plane_quads(self, plane: Plane) -> List[Quad]:
        """Return the quads used to draw a tiled plane. This is empty for untiled planes."""
        return [self.quad(ind) for ind in plane.quad_range]

    def sector_planes(self, sector: Sector) -> List[Plane]:
        """Return the planes bounding a sector."""
        return [self.plane(ind) for ind in sector.face_range]


class MapHolder:
    """Holds the current map for an application, allowing it to be swapped between threads.

    Readers should use :py:meth:`borrow`, which prevents the map being closed while in use.
    Only the most recent request wins: a background load which finishes after a newer
    :py:meth:`replace` or :py:meth:`load_in_background` call is discarded.
    """
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._map: Optional[Map] = None
        # Incremented for every request, so stale loads can be detected.
        self._generation = 0

    @property
    def current(self) -> Optional[Map]:
        """The current map, if loaded."""
        return self._map

    @contextlib.contextmanager
    def borrow(self) -> Generator[Optional[Map], None, None]:
        """Hold the map, so it can't be replaced until this exits."""
        with self._lock:
            yield self._map

    def _swap(self, new_map: Optional[Map]) -> None:
        """Set the current map, closing the old one. The lock must be held."""
        old, self._map = self._map, new_map
        if old is not None and old is not new_map:
            LOGGER.debug('Closing {}', old.filename)
            old.close()

    def replace(self, new_map: Optional[Map]) -> None:
        """Make a different map current, closing the previous one.

        Any background loads still running are superseded.
        """
        with self._lock:
            self._generation += 1
            self._swap(new_map)

    def load_in_background(
        self,
        filename: StringPath,
        on_loaded: Optional[Callable[[Map], Any]] = None,
        on_error: Optional[Callable[[BaseException], Any]] = None,
        **kwargs: Any,
    ) -> threading.Thread:
        """Load a map on a worker thread, then make it current.

        The previous map is closed immediately, so it's not drawn while loading. If another
        map is requested before this finishes, the result is closed and neither callback runs.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._swap(None)

        def worker() -> None:
            """Performs the load."""
            try:
                loaded = Map.load(filename, **kwargs)
            except Exception as exc:
                with self._lock:
                    stale = generation != self._generation
                if stale:
                    LOGGER.debug('Ignoring failure to load {}, superseded: {}', filename, exc)
                    return
                LOGGER.warning('Could not load {}:', filename, exc_info=exc)
                if on_error is not None:
                    on_error(exc)
                return
            with self._lock:
                stale = generation != self._generation
                if not stale:
                    self._swap(loaded)
            if stale:
                LOGGER.debug('Discarding {}, a newer map was requested.', filename)
                loaded.close()
                return
            if on_loaded is not None:
                on_loaded(loaded)

        thread = threading.Thread(target=worker, name='map_loader', daemon=True)
        thread.start()
        return thread
