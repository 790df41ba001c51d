"""Decodes the skybox image stored at the start of every level.

The skybox is a 256-colour RGB555 palette followed by a 512x256 indexed bitmap, stored
bottom-to-top. It's converted into a :py:class:`SkyImage`, which is owned by the
:py:class:`~powerslave.level.Map` and must be closed along with it.

Conversion to PIL images requires `Pillow`_ to be installed.

.. _`Pillow`: https://pillow.readthedocs.io/en/stable/
"""
from typing import IO, TYPE_CHECKING, Final, Iterator, List, Optional, Tuple
from types import TracebackType

import attrs

from powerslave.binformat import FixedArray, Layout, Primitive, RawBytes, load_one
from powerslave.const import PALETTE_SIZE, SKY_HEIGHT, SKY_WIDTH


if TYPE_CHECKING:
    from PIL.Image import Image as PIL_Image


__all__ = [
    'Pixel', 'Skybox', 'SkyImage', 'SKYBOX_LAYOUT',
    'rgb555', 'decode_sky', 'read_sky',
]


@attrs.frozen
class Pixel:
    """Data structure to hold colour data retrieved from an image."""
    r: int
    g: int
    b: int

    def __iter__(self) -> Iterator[int]:
        yield self.r
        yield self.g
        yield self.b


@attrs.frozen(repr=False)
class Skybox:
    """The raw skybox block, as stored in the file."""
    palette: Tuple[int, ...]
    bitmap: bytes

    def __repr__(self) -> str:
        return f'<Skybox: {len(self.palette)} colours, {len(self.bitmap)} pixels>'


SKYBOX_LAYOUT: Final = Layout('Skybox', [
    ('palette', FixedArray(Primitive('H'), PALETTE_SIZE)),
    ('bitmap', RawBytes(SKY_WIDTH * SKY_HEIGHT)),
], Skybox)


def rgb555(colour: int) -> Pixel:
    """Expand a 15-bit colour to 8 bits per channel.

    The low 5 bits are red, then green, then blue. The top bit is ignored.
    """
    return Pixel(
        (colour & 31) * 8,
        ((colour >> 5) & 31) * 8,
        ((colour >> 10) & 31) * 8,
    )


class SkyImage:
    """A decoded RGB image, stored top-to-bottom.

    This holds the only copy of the pixel data. Once :py:meth:`close` is called,
    it can no longer be read.
    """
    __slots__ = ['width', 'height', '_data']
    width: int
    height: int
    _data: Optional[bytearray]

    def __init__(self, width: int, height: int, data: Optional[bytearray] = None) -> None:
        self.width = width
        self.height = height
        if data is None:
            data = bytearray(width * height * 3)
        elif len(data) != width * height * 3:
            raise ValueError(
                f'Expected {width * height * 3} bytes for a '
                f'{width}x{height} image, got {len(data)}!'
            )
        self._data = data

    def __repr__(self) -> str:
        state = 'closed' if self._data is None else 'open'
        return f'<SkyImage {self.width}x{self.height}, {state}>'

    @property
    def closed(self) -> bool:
        """Whether the image has been released."""
        return self._data is None

    def _buffer(self) -> bytearray:
        if self._data is None:
            raise ValueError('Sky image has been closed!')
        return self._data

    def close(self) -> None:
        """Release the pixel data. Closing twice is allowed."""
        self._data = None

    def __enter__(self) -> 'SkyImage':
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_value: Optional[BaseException],
        tback: Optional[TracebackType],
    ) -> None:
        self.close()

    def __getitem__(self, item: Tuple[int, int]) -> Pixel:
        """Retrieve the pixel at the given ``(x, y)`` position, with ``(0, 0)`` in the top left."""
        x, y = item
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f'({x}, {y}) is outside a {self.width}x{self.height} image!')
        data = self._buffer()
        off = 3 * (self.width * y + x)
        return Pixel(data[off], data[off + 1], data[off + 2])

    def tobytes(self) -> bytes:
        """Return the raw RGB pixel data, row by row from the top."""
        return bytes(self._buffer())

    def flip_vertical(self) -> None:
        """Flip the image upside-down, in place."""
        data = self._buffer()
        stride = self.width * 3
        rows = [data[y * stride:(y + 1) * stride] for y in range(self.height)]
        rows.reverse()
        data[:] = b''.join(rows)

    def to_PIL(self) -> 'PIL_Image':
        """Convert the image into a PIL image.

        Requires Pillow to be installed.
        """
        data = self._buffer()
        from PIL.Image import frombuffer
        return frombuffer(
            'RGB',
            (self.width, self.height),
            bytes(data),
            'raw',
            'RGB',
            0,
            1,
        ).copy()


def decode_sky(skybox: Skybox) -> SkyImage:
    """Expand the palette and bitmap into a full colour image."""
    if len(skybox.bitmap) != SKY_WIDTH * SKY_HEIGHT:
        raise ValueError(f'Skybox bitmap must be {SKY_WIDTH * SKY_HEIGHT} bytes, not {len(skybox.bitmap)}!')
    palette: List[bytes] = [bytes(rgb555(colour)) for colour in skybox.palette]
    # The palette is always full, so every index byte is valid.
    img = SkyImage(SKY_WIDTH, SKY_HEIGHT, bytearray(b''.join([
        palette[ind] for ind in skybox.bitmap
    ])))
    # Rows are stored from the bottom up.
    img.flip_vertical()
    return img


def read_sky(file: IO[bytes]) -> SkyImage:
    """Read the skybox from the current position in the file, and decode it."""
    return decode_sky(load_one(SKYBOX_LAYOUT, file))
