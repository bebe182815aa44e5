"""Pack the textures in a map into texture arrays.

All layers in a texture array must share the same size, so textures are first sorted into bins
by their dimensions. Each bin then produces one atlas, with a layer for each texture.
Textures are stored as 8-bit palette indexes, with 4 mip levels.
"""
from typing import Dict, Final, Iterable, List, Mapping, Optional, Tuple
import re

import attrs

from q1bsp import logger
from q1bsp.bsp import BSP, MIP_LEVELS, ImportIssue, IssueKind, MalformedLump, TextureRecord


__all__ = [
    'MAX_TEXTURE_SIZE', 'TextureBin', 'TextureSlot', 'TextureAtlas', 'TextureAtlasSet',
    'bin_textures', 'sort_key', 'flip_rows', 'build_texture_atlases',
]

LOGGER = logger.get_logger(__name__)
#: Sizes at or above this are assumed to be garbage data.
MAX_TEXTURE_SIZE: Final = 4096
CORRUPT_SIZE: Final = 2
CORRUPT_TAG: Final = ' CORRUPT'
# Animated textures have a "+0" to "+9" (or "+a" to "+j" for the alternate set) prefix.
ANIM_PREFIX = re.compile(r'^(\+[0-9A-Za-z])\s*(.+)$')


@attrs.frozen
class TextureBin:
    """The textures sharing a single size, in atlas layer order."""
    width: int
    height: int
    members: List[TextureRecord]

    def __len__(self) -> int:
        return len(self.members)

    @property
    def dimension_key(self) -> int:
        """The key shared by all the member textures."""
        return self.width | (self.height << 16)

    @property
    def is_valid(self) -> bool:
        """Check if the dimensions are sensible enough to read the pixel data."""
        return 0 < self.width < MAX_TEXTURE_SIZE and 0 < self.height < MAX_TEXTURE_SIZE


@attrs.frozen
class TextureSlot:
    """The location of a texture inside the atlases."""
    bin: int
    layer: int


@attrs.frozen
class TextureAtlas:
    """A texture array, with one layer per texture.

    Each mip level is an 8-bit single-channel image, rows ordered bottom to top.
    """
    width: int
    height: int
    mip_count: int
    #: ``mips[layer][level]`` is the pixel data for that mip of that layer.
    mips: List[List[bytes]]
    #: The name for each layer. Corrupt textures are tagged as such.
    names: List[str]
    corrupt: bool = False

    @property
    def layer_count(self) -> int:
        """The number of textures in the array."""
        return len(self.mips)

    @property
    def names_text(self) -> str:
        """The layer names, one per line."""
        return '\n'.join(self.names)


@attrs.frozen
class TextureAtlasSet:
    """All the texture atlases for a map, along with where each texture was placed."""
    bins: List[TextureBin]
    atlases: List[TextureAtlas]
    #: For each texture index, the bin and layer it is in.
    slots: Mapping[int, TextureSlot]

    def __len__(self) -> int:
        return len(self.atlases)

    def slot(self, texture: int) -> Optional[TextureSlot]:
        """Return the location of a texture, or None if the index is invalid."""
        return self.slots.get(texture)


def sort_key(name: str) -> str:
    """Compute the sort key for a texture name.

    Animation frame prefixes like ``+0`` are moved to the end, so frames are sorted next to the
    other textures with the same base name.
    """
    match = ANIM_PREFIX.match(name)
    if match is not None:
        return match.group(2) + match.group(1)
    return name


def bin_textures(textures: Iterable[TextureRecord]) -> List[TextureBin]:
    """Group textures by their dimensions, then sort each group by name.

    Bins are returned in the order each size is first encountered.
    """
    # Garbage widths over 16 bits would collide in the dimension key.
    by_key: Dict[Tuple[int, int], List[TextureRecord]] = {}
    for tex in textures:
        by_key.setdefault((tex.width, tex.height), []).append(tex)
    return [
        TextureBin(
            members[0].width, members[0].height,
            sorted(members, key=lambda tex: sort_key(tex.name)),
        )
        for members in by_key.values()
    ]


def flip_rows(data: bytes, width: int, height: int) -> bytes:
    """Reverse the order of rows in an 8-bit image.

    The file stores rows top to bottom, the atlases bottom to top.
    """
    if width <= 0:
        return bytes(data)
    rows = [data[y * width:(y + 1) * width] for y in range(height)]
    rows.reverse()
    return b''.join(rows)


def _build_atlas(bsp: BSP, tex_bin: TextureBin) -> TextureAtlas:
    """Read every mip of every texture in the bin."""
    mips: List[List[bytes]] = []
    for tex in tex_bin.members:
        mips.append([
            flip_rows(bsp.read_mip(tex, level), tex.width >> level, tex.height >> level)
            for level in range(MIP_LEVELS)
        ])
    return TextureAtlas(
        tex_bin.width, tex_bin.height, MIP_LEVELS, mips,
        [tex.name for tex in tex_bin.members],
    )


def _build_placeholder(tex_bin: TextureBin) -> TextureAtlas:
    """Produce a blank atlas for unreadable textures, so faces can still refer to them."""
    return TextureAtlas(
        CORRUPT_SIZE, CORRUPT_SIZE, 1,
        [[bytes(CORRUPT_SIZE * CORRUPT_SIZE)] for _ in tex_bin.members],
        [tex.name + CORRUPT_TAG for tex in tex_bin.members],
        corrupt=True,
    )


def build_texture_atlases(bsp: BSP, issues: List[ImportIssue]) -> TextureAtlasSet:
    """Build an atlas for each group of same-size textures in the map.

    Bins with invalid sizes or truncated pixel data are replaced by placeholders, and reported
    in ``issues``.
    """
    bins = bin_textures(bsp.textures)
    atlases: List[TextureAtlas] = []
    slots: Dict[int, TextureSlot] = {}

    for bin_ind, tex_bin in enumerate(bins):
        atlas: Optional[TextureAtlas] = None
        if tex_bin.is_valid:
            LOGGER.debug(
                'Texture array #{}: {}x{}, {} layers',
                bin_ind, tex_bin.width, tex_bin.height, len(tex_bin),
            )
            try:
                atlas = _build_atlas(bsp, tex_bin)
            except MalformedLump as exc:
                # All layers share the array, so one bad member spoils the whole bin.
                problem = f'pixel data is truncated ({exc})'
        else:
            problem = f'size {tex_bin.width}x{tex_bin.height}'

        if atlas is None:
            for tex in tex_bin.members:
                message = f'Corrupt texture "{tex.name}" with {problem}, skipping'
                LOGGER.warning(message)
                issues.append(ImportIssue(IssueKind.CORRUPT_TEXTURE, message, tex.index))
            atlas = _build_placeholder(tex_bin)
        atlases.append(atlas)
        for layer, tex in enumerate(tex_bin.members):
            slots[tex.index] = TextureSlot(bin_ind, layer)

    return TextureAtlasSet(bins, atlases, slots)
