"""
The binformat module :mod:`binformat` contains functionality for handling the binary records in
map files, essentially expanding on :external:mod:`struct`'s functionality.
"""
from typing import Any, Final, Iterator, List, Mapping, Tuple, Union
from struct import Struct
import functools
import struct


__all__ = [
    'SIZES', 'SIZE_INT', 'SIZE_SHORT', 'SIZE_FLOAT',
    'iter_records', 'read_fixed_str', 'read_int_array',
    'RecordSizeError',
]

SIZES: Final[Mapping[str, int]] = {
    fmt: Struct('<' + fmt).size
    for fmt in 'bBhHiIf'
}
SIZE_SHORT: Final = 2
SIZE_INT: Final = 4
SIZE_FLOAT: Final = 4

assert SIZE_SHORT == SIZES['h']
assert SIZE_INT == SIZES['i']
assert SIZE_FLOAT == SIZES['f']

_cached_struct = functools.lru_cache()(Struct)


class RecordSizeError(ValueError):
    """Raised when a block of data cannot hold a whole number of records."""
    def __init__(self, size: int, record_size: int) -> None:
        super().__init__(f'{size} bytes is not a multiple of the {record_size}-byte record size!')
        self.size = size
        self.record_size = record_size


def iter_records(fmt: Union[Struct, str], data: bytes) -> Iterator[Tuple[Any, ...]]:
    """Unpack every fixed-size record from a block of data.

    :raises RecordSizeError: If the length is not an exact multiple of the record size. This is
        checked before anything is yielded.
    """
    if not isinstance(fmt, Struct):
        fmt = _cached_struct(fmt)
    if len(data) % fmt.size != 0:
        raise RecordSizeError(len(data), fmt.size)
    return fmt.iter_unpack(data)


def read_fixed_str(data: bytes, encoding: str = 'ascii') -> str:
    """Decode a fixed-length, null-padded string field.

    Everything after the first null is discarded.
    """
    end = data.find(b'\0')
    if end != -1:
        data = data[:end]
    return data.decode(encoding, 'surrogateescape')


def read_int_array(data: bytes, offset: int, count: int) -> List[int]:
    """Read ``count`` little-endian signed integers, starting at the offset.

    :raises struct.error: If the data is too short.
    """
    if count < 0:
        raise struct.error(f'Negative array count {count}')
    # Counts come from the file, so skip the cache.
    return list(Struct(f'<{count}i').unpack_from(data, offset))

