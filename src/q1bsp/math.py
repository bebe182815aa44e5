"""Immutable 3D vectors, and a few numeric helpers used when packing map data.

Quake stores positions with Z pointing up. :py:meth:`FrozenVec.swap_yz` converts to the Y-up
convention used by most renderers.
"""
from typing import Iterator, Tuple, Union
from typing_extensions import TypeAlias
import math


__all__ = [
    'FrozenVec', 'AnyVec', 'Tuple3',
    'format_float', 'next_pow2',
]

Tuple3: TypeAlias = Tuple[float, float, float]
AnyVec: TypeAlias = Union['FrozenVec', Tuple3]


def format_float(x: float, places: int = 6) -> str:
    """Convert the specified float to a string, stripping off a .0 if it ends with that."""
    result = format(x, f'.{places}f').rstrip('0')
    if result.endswith('.'):
        return result[:-1]
    else:
        return result


def next_pow2(num: int) -> int:
    """Return the smallest power of two greater than or equal to the number.

    Zero and negative numbers produce zero.
    """
    if num <= 0:
        return 0
    return 1 << (num - 1).bit_length()


class FrozenVec:
    """An immutable XYZ vector.

    Vectors compare equal to 3-tuples, and can be unpacked like them.
    """
    __slots__ = ('_x', '_y', '_z')
    _x: float
    _y: float
    _z: float

    def __init__(self, x: float = 0.0, y: float = 0.0, z: float = 0.0) -> None:
        self._x = float(x)
        self._y = float(y)
        self._z = float(z)

    @property
    def x(self) -> float:
        """The X axis of the vector."""
        return self._x

    @property
    def y(self) -> float:
        """The Y axis of the vector."""
        return self._y

    @property
    def z(self) -> float:
        """The Z axis of the vector."""
        return self._z

    def __repr__(self) -> str:
        return f'FrozenVec({format_float(self._x)}, {format_float(self._y)}, {format_float(self._z)})'

    def __str__(self) -> str:
        return f'{format_float(self._x)} {format_float(self._y)} {format_float(self._z)}'

    def __iter__(self) -> Iterator[float]:
        yield self._x
        yield self._y
        yield self._z

    def __len__(self) -> int:
        return 3

    def __hash__(self) -> int:
        return hash((self._x, self._y, self._z))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FrozenVec):
            return self._x == other._x and self._y == other._y and self._z == other._z
        elif isinstance(other, tuple) and len(other) == 3:
            return self._x == other[0] and self._y == other[1] and self._z == other[2]
        return NotImplemented

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __mul__(self, other: float) -> 'FrozenVec':
        if isinstance(other, (int, float)):
            return FrozenVec(self._x * other, self._y * other, self._z * other)
        return NotImplemented

    __rmul__ = __mul__

    def __neg__(self) -> 'FrozenVec':
        return FrozenVec(-self._x, -self._y, -self._z)

    def dot(self, other: AnyVec) -> float:
        """Return the dot product of both vectors."""
        x, y, z = other
        return self._x * x + self._y * y + self._z * z

    def len_sq(self) -> float:
        """Return the magnitude squared, which is slightly faster."""
        return self._x ** 2 + self._y ** 2 + self._z ** 2

    def mag(self) -> float:
        """Compute the distance from the vector and the origin."""
        return math.sqrt(self.len_sq())

    def norm(self) -> 'FrozenVec':
        """Normalise the Vector.

         This is done by transforming it to have a magnitude of 1 but the same direction.
         The vector is left unchanged if it is equal to (0,0,0), instead of raising.
        """
        mag = self.mag()
        if mag == 0:
            return self
        return FrozenVec(self._x / mag, self._y / mag, self._z / mag)

    def swap_yz(self) -> 'FrozenVec':
        """Exchange the Y and Z axes, converting between Z-up and Y-up space."""
        return FrozenVec(self._x, self._z, self._y)
