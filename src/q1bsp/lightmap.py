"""Pack the lighting lump into a single texture.

Quake stores every face's lightmap as one contiguous block of 8-bit samples, located by the
offset in each face. The block is copied as-is into a power-of-two texture, which faces index
using the offset stored in their vertex data.
"""
from typing import Tuple
import math

import attrs

from q1bsp import logger
from q1bsp.math import next_pow2


__all__ = ['LightmapAtlas', 'atlas_size', 'build_lightmap_atlas']

LOGGER = logger.get_logger(__name__)


@attrs.frozen
class LightmapAtlas:
    """An 8-bit single-channel texture holding the raw lighting samples, row-major."""
    width: int
    height: int
    data: bytes
    #: If true, the map had no lighting data. This atlas is then just a placeholder.
    is_empty: bool = False

    @property
    def size(self) -> Tuple[int, int]:
        """The dimensions of the texture."""
        return self.width, self.height


def atlas_size(length: int) -> Tuple[int, int]:
    """Compute the texture dimensions needed to hold the specified number of samples.

    This is the smallest power of two square which can fit the data, halved in height if the
    data would only fill half of it or less.
    """
    side = math.isqrt(length) if length > 0 else 0
    if side * side < length:
        side += 1
    pow2 = next_pow2(side)
    if side * side >= pow2 * pow2 // 2:
        return pow2, pow2
    else:
        return pow2, pow2 // 2


def build_lightmap_atlas(lighting: bytes) -> LightmapAtlas:
    """Copy the lighting samples into a texture.

    If the map has no lighting (it was not run through a light compiler),
    a 1x1 black placeholder is returned, which is marked as empty.
    """
    if not lighting:
        LOGGER.info('No lightmap data, map is fullbright.')
        return LightmapAtlas(1, 1, bytes(1), is_empty=True)

    width, height = atlas_size(len(lighting))
    LOGGER.debug('Lightmap: {} bytes in a {}x{} texture', len(lighting), width, height)
    data = bytearray(width * height)
    data[:len(lighting)] = lighting
    return LightmapAtlas(width, height, bytes(data))
