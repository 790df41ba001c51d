"""Implements an immutable 3D vector, used when computing normals and positions.

Levels are stored with Z as the up axis. Anything produced by :py:mod:`powerslave.geometry`
has already been converted to Y-up, so consumers can feed it to OpenGL directly.
"""
from typing import Iterator, Tuple, Union
import math


__all__ = ['Vec', 'AnyVec', 'format_float']

Tuple3 = Tuple[float, float, float]
AnyVec = Union['Vec', Tuple3]


def format_float(x: float, places: int = 6) -> str:
    """Convert the specified float to a string, stripping off the .0 if it ends with that."""
    result = f'{x:.{places}f}'
    if '.' in result:
        result = result.rstrip('0').rstrip('.')
    if result == '-0':
        return '0'
    return result


class Vec:
    """An immutable XYZ vector. Comparisons allow a tolerance of ``1e-6``."""
    __slots__ = ['_x', '_y', '_z']
    _x: float
    _y: float
    _z: float

    def __init__(self, x: float = 0.0, y: float = 0.0, z: float = 0.0) -> None:
        self._x = float(x)
        self._y = float(y)
        self._z = float(z)

    @property
    def x(self) -> float:
        return self._x

    @property
    def y(self) -> float:
        return self._y

    @property
    def z(self) -> float:
        return self._z

    def __repr__(self) -> str:
        """Code required to reproduce this vector."""
        return f"Vec({format_float(self._x)}, {format_float(self._y)}, {format_float(self._z)})"

    def __str__(self) -> str:
        """Return the values, separated by spaces."""
        return f'{format_float(self._x)} {format_float(self._y)} {format_float(self._z)}'

    def __iter__(self) -> Iterator[float]:
        """Iterating through the vector yields each axis in order."""
        yield self._x
        yield self._y
        yield self._z

    def __len__(self) -> int:
        return 3

    def __getitem__(self, ind: int) -> float:
        """Allow reading values by index instead of name if desired."""
        if ind == 0:
            return self._x
        elif ind == 1:
            return self._y
        elif ind == 2:
            return self._z
        raise KeyError(f'Invalid axis: {ind!r}')

    def __add__(self, other: AnyVec) -> 'Vec':
        """Add two vectors together."""
        try:
            return Vec(self._x + other[0], self._y + other[1], self._z + other[2])
        except (TypeError, IndexError):
            return NotImplemented

    __radd__ = __add__

    def __sub__(self, other: AnyVec) -> 'Vec':
        """Subtract a vector from this one."""
        try:
            return Vec(self._x - other[0], self._y - other[1], self._z - other[2])
        except (TypeError, IndexError):
            return NotImplemented

    def __rsub__(self, other: AnyVec) -> 'Vec':
        try:
            return Vec(other[0] - self._x, other[1] - self._y, other[2] - self._z)
        except (TypeError, IndexError):
            return NotImplemented

    def __mul__(self, other: float) -> 'Vec':
        """Multiply each axis by a scalar."""
        if isinstance(other, Vec):
            raise TypeError('Cannot multiply 2 Vectors.')
        try:
            return Vec(self._x * other, self._y * other, self._z * other)
        except TypeError:
            return NotImplemented

    __rmul__ = __mul__

    def __truediv__(self, other: float) -> 'Vec':
        """Divide each axis by a scalar."""
        if isinstance(other, Vec):
            raise TypeError('Cannot divide 2 Vectors.')
        try:
            return Vec(self._x / other, self._y / other, self._z / other)
        except TypeError:
            return NotImplemented

    def __neg__(self) -> 'Vec':
        """The inverted form of a Vector has inverted axes."""
        return Vec(-self._x, -self._y, -self._z)

    def __bool__(self) -> bool:
        """Vectors are True if any axis is non-zero."""
        return self._x != 0 or self._y != 0 or self._z != 0

    def __eq__(self, other: object) -> bool:
        """Two vectors are equal if all axes are within ``1e-6``.

        A Vector can be compared with a 3-tuple as if it was a Vector also.
        """
        if isinstance(other, Vec):
            ox, oy, oz = other._x, other._y, other._z
        elif isinstance(other, tuple) and len(other) == 3:
            ox, oy, oz = other
        else:
            return NotImplemented
        return (
            abs(ox - self._x) < 1e-6 and
            abs(oy - self._y) < 1e-6 and
            abs(oz - self._z) < 1e-6
        )

    def __hash__(self) -> int:
        """Hashing a vec is the same as hashing the tuple form."""
        return hash((round(self._x, 6), round(self._y, 6), round(self._z, 6)))

    def as_tuple(self) -> Tuple3:
        """Return the Vector as a tuple."""
        return self._x, self._y, self._z

    def mag(self) -> float:
        """Compute the distance from the vector and the origin."""
        return math.sqrt(self._x**2 + self._y**2 + self._z**2)

    def len_sq(self) -> float:
        """Return the magnitude squared, which is slightly faster."""
        return self._x**2 + self._y**2 + self._z**2

    def norm(self) -> 'Vec':
        """Normalise the Vector.

        The vector is left unchanged if it is equal to ``(0, 0, 0)``, instead of raising.
        """
        if self._x == 0 and self._y == 0 and self._z == 0:
            return self
        mag = self.mag()
        # Adding 0 clears -0 values.
        return Vec(self._x / mag + 0, self._y / mag + 0, self._z / mag + 0)

    def dot(self, other: AnyVec) -> float:
        """Return the dot product of both Vectors."""
        return (
            self._x * other[0] +
            self._y * other[1] +
            self._z * other[2]
        )

    def cross(self, other: AnyVec) -> 'Vec':
        """Return the cross product of both Vectors."""
        return Vec(
            self._y * other[2] - self._z * other[1],
            self._z * other[0] - self._x * other[2],
            self._x * other[1] - self._y * other[0],
        )
