"""
The binformat module :mod:`binformat` describes fixed-layout binary records, and reads them \
from files stored in the Saturn's big-endian byte order.

Each record type is described by a :py:class:`Layout`, a static list of fields. Decoding a record
first reverses the bytes of every multi-byte field (:py:func:`swap_endian`), then unpacks the
now little-endian buffer. Nothing here knows about any specific record type.
"""
from typing import (
    IO, Any, Callable, Dict, Final, Generic, Iterator, List, Mapping, Sequence, Tuple,
    TypeVar, Union,
)
from struct import Struct
import functools

import attrs

from powerslave import TruncatedRecord


__all__ = [
    'SIZES',
    'Primitive', 'RawBytes', 'Nested', 'FixedArray', 'FieldKind', 'Field', 'Layout',
    'swap_endian', 'load_one', 'load_many',
]

SIZES: Final[Mapping[str, int]] = {
    fmt: Struct('<' + fmt).size
    for fmt in 'bBhHiIqQ'
}
T = TypeVar('T')
_cached_struct = functools.lru_cache()(Struct)


@attrs.frozen
class Primitive:
    """A single integer, described by a :external:py:mod:`struct` format character."""
    fmt: str = attrs.field(validator=attrs.validators.in_(SIZES))

    @property
    def size(self) -> int:
        return SIZES[self.fmt]


@attrs.frozen
class RawBytes:
    """A block of bytes which is stored as-is, and never byte-swapped."""
    size: int


@attrs.frozen
class Nested:
    """Another record embedded inside this one."""
    layout: 'Layout[Any]'

    @property
    def size(self) -> int:
        return self.layout.size


@attrs.frozen
class FixedArray:
    """A fixed number of consecutive elements. This decodes to a tuple."""
    element: 'FieldKind'
    count: int

    @property
    def size(self) -> int:
        return self.element.size * self.count


FieldKind = Union[Primitive, RawBytes, Nested, FixedArray]


@attrs.frozen
class Field:
    """A field in a layout, positioned at a specific offset."""
    name: str
    kind: FieldKind
    offset: int

    @property
    def size(self) -> int:
        return self.kind.size


class Layout(Generic[T]):
    """Describes the fields of a record, in file order.

    Offsets are assigned sequentially, without any padding.
    The factory is called with each field as a keyword argument to build the final record.
    """
    name: str
    fields: Tuple[Field, ...]
    size: int
    factory: Callable[..., T]
    _by_name: Dict[str, Field]

    def __init__(
        self,
        name: str,
        fields: Sequence[Tuple[str, FieldKind]],
        factory: Callable[..., T],
    ) -> None:
        self.name = name
        self.factory = factory
        offset = 0
        field_list: List[Field] = []
        for field_name, kind in fields:
            field_list.append(Field(field_name, kind, offset))
            offset += kind.size
        self.fields = tuple(field_list)
        self.size = offset
        self._by_name = {field.name: field for field in self.fields}
        if len(self._by_name) != len(self.fields):
            raise ValueError(f'Duplicate field names in {name}!')

    def __repr__(self) -> str:
        return f'<Layout {self.name}, {len(self.fields)} fields, {self.size} bytes>'

    def __getitem__(self, name: str) -> Field:
        """Look up a field by name."""
        return self._by_name[name]

    def offset_of(self, name: str) -> int:
        """Return the byte offset of the named field."""
        return self._by_name[name].offset

    def unpack(self, data: Union[bytes, bytearray], offset: int = 0) -> Dict[str, Any]:
        """Decode each field from a little-endian buffer, returning a name -> value dict."""
        return {
            field.name: _unpack_kind(field.kind, data, offset + field.offset)
            for field in self.fields
        }

    def build(self, data: Union[bytes, bytearray], offset: int = 0) -> T:
        """Decode a little-endian buffer into the record."""
        return self.factory(**self.unpack(data, offset))


def _unpack_kind(kind: FieldKind, data: Union[bytes, bytearray], offset: int) -> Any:
    """Decode a single field."""
    if isinstance(kind, Primitive):
        [value] = _cached_struct('<' + kind.fmt).unpack_from(data, offset)
        return value
    elif isinstance(kind, RawBytes):
        return bytes(data[offset:offset + kind.size])
    elif isinstance(kind, Nested):
        return kind.layout.build(data, offset)
    elif isinstance(kind, FixedArray):
        elem = kind.element
        if isinstance(elem, Primitive):
            # Do the whole array in one call.
            return _cached_struct(f'<{kind.count}{elem.fmt}').unpack_from(data, offset)
        return tuple([
            _unpack_kind(elem, data, offset + i * elem.size)
            for i in range(kind.count)
        ])
    else:
        raise TypeError(f'Unknown field kind {kind!r}')


def swap_endian(buffer: bytearray, layout: Union['Layout[Any]', FieldKind], offset: int = 0) -> None:
    """Reverse the byte order of every multi-byte field in the buffer, in place.

    This converts between big and little endian, so applying it twice restores the original.
    Raw byte blocks and single-byte values are left untouched.
    """
    if isinstance(layout, Layout):
        for field in layout.fields:
            swap_endian(buffer, field.kind, offset + field.offset)
    elif isinstance(layout, Nested):
        swap_endian(buffer, layout.layout, offset)
    elif isinstance(layout, FixedArray):
        elem = layout.element
        if isinstance(elem, RawBytes) or (isinstance(elem, Primitive) and elem.size == 1):
            return
        for i in range(layout.count):
            swap_endian(buffer, elem, offset + i * elem.size)
    elif isinstance(layout, Primitive):
        end = offset + layout.size
        buffer[offset:end] = buffer[offset:end][::-1]
    elif isinstance(layout, RawBytes):
        pass
    else:
        raise TypeError(f'Unknown field kind {layout!r}')


def load_one(layout: Layout[T], file: IO[bytes]) -> T:
    """Read a single big-endian record from the current position of the file."""
    try:
        pos = file.tell()
    except (OSError, AttributeError):
        pos = -1
    data = bytearray(file.read(layout.size))
    if len(data) < layout.size:
        raise TruncatedRecord(layout.name, layout.size, len(data), pos)
    swap_endian(data, layout)
    return layout.build(data)


def load_many(layout: Layout[T], file: IO[bytes], count: int) -> Iterator[T]:
    """Lazily read ``count`` consecutive records, in file order.

    If the count is zero, no reading will be performed at all.
    """
    for _ in range(count):
        yield load_one(layout, file)
