"""Read the lumps of Quake 1 BSP files.

The header is read eagerly, while the records in each lump are lazily parsed when each
section is first accessed.
"""
from typing import (
    Callable, Dict, Generic, Iterator, List, Optional, Tuple, Type, TypeVar, Union, overload,
)
from enum import Enum
import inspect
import os
import struct

import attrs

from q1bsp import StringPath, logger
from q1bsp.binformat import SIZE_INT, RecordSizeError, iter_records, read_fixed_str, read_int_array
from q1bsp.math import FrozenVec


__all__ = [
    'BSP_LUMPS', 'BSP_VERSION', 'LUMP_COUNT', 'MAX_FILE_SIZE',
    'BSP', 'Lump',
    'BSPError', 'MalformedLump', 'SizeLimitError',
    'IssueKind', 'ImportIssue',
    'Plane', 'PlaneType', 'Edge', 'Face', 'TexInfo', 'TextureRecord', 'Model',
]

BSP_VERSION = 29  # Quake's version number.
# Other engines with the same record layout.
KNOWN_VERSIONS = {
    29: 'Quake',
    30: 'Half-Life',
}
# Extended-limit formats, which use larger records.
EXTENDED_MAGIC = {b'BSP2', b'2PSB'}

HEADER_VERSION = struct.Struct('<i')
HEADER_LUMP = struct.Struct('<ii')  # Offset, length.
# Files must be addressable with signed 32-bit offsets.
MAX_FILE_SIZE = 2**31 - 1

ST_PLANE = struct.Struct('<4fi')
ST_VERTEX = struct.Struct('<3f')
ST_EDGE = struct.Struct('<2H')
ST_SURFEDGE = struct.Struct('<i')
ST_FACE = struct.Struct('<hhihh4Bi')
ST_TEXINFO = struct.Struct('<8f2i')
ST_MODEL = struct.Struct('<9f7i')
ST_TEX_HEADER = struct.Struct('<16s2I4I')
MIP_LEVELS = 4

T = TypeVar('T')

LOGGER = logger.get_logger(__name__)


class BSP_LUMPS(Enum):
    """All the lumps in a BSP file.

    The values represent the order lumps appear in the index.
    """
    ENTITIES = 0
    PLANES = 1  #: self.planes
    TEXTURES = 2  #: self.textures
    VERTEXES = 3  #: self.vertexes
    VISIBILITY = 4
    NODES = 5
    TEXINFO = 6  #: self.texinfo
    FACES = 7  #: self.faces
    LIGHTING = 8  #: self.lighting
    CLIPNODES = 9
    LEAFS = 10
    MARKSURFACES = 11
    EDGES = 12  #: self.edges
    SURFEDGES = 13  #: self.surfedges
    MODELS = 14  #: self.models


LUMP_COUNT = len(BSP_LUMPS)  # 15
HEADER_SIZE = HEADER_VERSION.size + LUMP_COUNT * HEADER_LUMP.size


class BSPError(ValueError):
    """Base class for problems which prevent a map from being read."""


class MalformedLump(BSPError):
    """A lump has an invalid size or offset, or refers to data which does not exist."""
    lump: Optional[BSP_LUMPS]

    def __init__(self, lump: Optional[BSP_LUMPS], message: str) -> None:
        if lump is not None:
            message = f'{lump.name} lump: {message}'
        super().__init__(message)
        self.lump = lump


class SizeLimitError(BSPError):
    """The file is too large to be addressed by the format."""


class IssueKind(Enum):
    """Problems which are reported, but do not stop the import."""
    UNKNOWN_VERSION = 'unknown_version'
    CORRUPT_TEXTURE = 'corrupt_texture'
    DEGENERATE_FACE = 'degenerate_face'
    UNRESOLVED_TEXTURE = 'unresolved_texture'


@attrs.frozen
class ImportIssue:
    """A recoverable problem found while importing."""
    kind: IssueKind
    message: str
    #: The texture, face or model index the issue refers to, or -1.
    index: int = -1

    def __str__(self) -> str:
        return f'[{self.kind.name}] {self.message}'


@attrs.define(eq=False, repr=False)
class Lump:
    """Represents a lump header in a BSP file, along with a copy of its data."""
    type: BSP_LUMPS
    offset: int
    data: bytes = b''

    def __repr__(self) -> str:
        return f'<BSP Lump {self.type.name!r}, {len(self.data)} bytes at {self.offset}>'


class PlaneType(Enum):
    """The orientation of a plane."""
    X = 0  # Exactly in the X axis.
    Y = 1  # Exactly in the Y axis.
    Z = 2  # Exactly in the Z axis.
    ANY_X = 3  # Pointing mostly in the X axis
    ANY_Y = 4  # Pointing mostly in the Y axis.
    ANY_Z = 5  # Pointing mostly in the Z axis.


@attrs.frozen
class Plane:
    """A plane. The normal is not necessarily normalised."""
    normal: FrozenVec
    dist: float
    type: Union[PlaneType, int]


@attrs.frozen
class Edge:
    """A pair of vertex indexes defining an edge of a face."""
    v0: int
    v1: int


@attrs.frozen
class Face:
    """A brush face definition."""
    plane: int
    #: If non-zero, the face points opposite to the plane normal.
    side: int
    first_edge: int
    num_edges: int
    texinfo: int
    #: The four light styles, 255 means unused.
    styles: Tuple[int, int, int, int]
    #: Byte offset into the lighting lump. This is passed through as-is, even if negative.
    lightmap_offset: int


@attrs.frozen
class TexInfo:
    """Represents texture positioning / scaling info."""
    s_axis: FrozenVec
    s_offset: float
    t_axis: FrozenVec
    t_offset: float
    texture: int
    flags: int


@attrs.frozen
class TextureRecord:
    """A texture header from the texture directory.

    The data itself is not copied, the offsets locate it inside the texture lump.
    """
    index: int
    name: str
    width: int
    height: int
    #: Offset of the header, relative to the start of the lump. -1 if the texture is missing.
    offset: int
    #: Offsets of each mip level, relative to the header.
    mip_offsets: Tuple[int, int, int, int]

    @property
    def dimension_key(self) -> int:
        """Textures with the same key have identical sizes, and can share one texture array."""
        return self.width | (self.height << 16)


@attrs.frozen
class Model:
    """A brush model definition, used for the world entity along with all other brush ents."""
    mins: FrozenVec
    maxs: FrozenVec
    origin: FrozenVec
    head_nodes: Tuple[int, int, int, int]
    vis_leafs: int
    first_face: int
    num_faces: int


class ParsedLump(Generic[T]):
    """Allows access to parsed versions of lumps.

    When accessed, the corresponding lump is parsed into an object tree, then cached.
    Errors unpacking the data are converted into :py:class:`MalformedLump`.
    """
    lump: BSP_LUMPS
    __name__: str

    def __init__(self, lump: BSP_LUMPS) -> None:
        self.lump = lump
        self.__name__ = ''
        # May also be a Generator[X] if T = List[X]
        self._read: Optional[Callable[['BSP', bytes], T]] = None

    def __set_name__(self, owner: Type['BSP'], name: str) -> None:
        self.__name__ = name
        self.__objclass__ = owner
        self._read = getattr(owner, '_lmp_read_' + name)

    def __repr__(self) -> str:
        return f'<q1bsp.BSP.{self.__name__} member>'

    @overload
    def __get__(self, instance: None, owner: Optional[type] = None) -> 'ParsedLump[T]': ...
    @overload
    def __get__(self, instance: 'BSP', owner: Optional[type] = None) -> T: ...

    def __get__(self, instance: Optional['BSP'], owner: Optional[type] = None) -> Union['ParsedLump[T]', T]:
        """Read the lump, or return the previously parsed version."""
        if instance is None:  # Accessed on the class.
            return self
        result: T
        try:
            # noinspection PyProtectedMember
            result = instance._parsed_lumps[self.lump]
            return result
        except KeyError:
            pass
        if self._read is None:
            raise TypeError('ParsedLump.__set_name__ was never called!')
        data = instance.lumps[self.lump].data
        LOGGER.debug('Load lump {} ({} bytes)', self.lump.name, len(data))
        try:
            result = self._read(instance, data)
            if inspect.isgenerator(result):  # Convenience, yield to accumulate into a list.
                result = list(result)  # type: ignore
        except RecordSizeError as exc:
            raise MalformedLump(self.lump, str(exc)) from None
        except struct.error as exc:
            raise MalformedLump(self.lump, f'truncated data ({exc})') from None

        instance._parsed_lumps[self.lump] = result  # noqa
        return result

    def __set__(self, instance: Optional['BSP'], value: T) -> None:
        raise AttributeError(f'BSP.{self.__name__} is read-only.')


# noinspection PyMethodMayBeStatic
class BSP:
    """A Quake 1 BSP file.

    The source can either be a filename, or the raw contents of the file.
    The file is only open while the header and lump data is copied out.
    """
    #: The version ID in the file.
    version: int
    lumps: Dict[BSP_LUMPS, Lump]
    #: Recoverable problems found while reading.
    issues: List[ImportIssue]

    def __init__(self, source: Union[StringPath, bytes, bytearray, memoryview]) -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            self.filename: Optional[StringPath] = None
            self._source: Optional[bytes] = bytes(source)
        else:
            self.filename = source
            self._source = None
        self.version = BSP_VERSION
        self.lumps = {}
        self.issues = []
        self._parsed_lumps: Dict[BSP_LUMPS, object] = {}

        self.read()

    def __repr__(self) -> str:
        if self.filename is not None:
            return f'<BSP v{self.version} {os.fspath(self.filename)!r}>'
        return f'<BSP v{self.version}, in memory>'

    planes: ParsedLump[List[Plane]] = ParsedLump(BSP_LUMPS.PLANES)
    vertexes: ParsedLump[List[FrozenVec]] = ParsedLump(BSP_LUMPS.VERTEXES)
    edges: ParsedLump[List[Edge]] = ParsedLump(BSP_LUMPS.EDGES)
    surfedges: ParsedLump[List[int]] = ParsedLump(BSP_LUMPS.SURFEDGES)
    faces: ParsedLump[List[Face]] = ParsedLump(BSP_LUMPS.FACES)
    texinfo: ParsedLump[List[TexInfo]] = ParsedLump(BSP_LUMPS.TEXINFO)
    textures: ParsedLump[List[TextureRecord]] = ParsedLump(BSP_LUMPS.TEXTURES)
    models: ParsedLump[List[Model]] = ParsedLump(BSP_LUMPS.MODELS)
    lighting: ParsedLump[bytes] = ParsedLump(BSP_LUMPS.LIGHTING)

    def read(self) -> None:
        """Load the header, and copy out the data for each lump."""
        self.lumps.clear()
        self.issues.clear()
        self._parsed_lumps.clear()

        if self._source is not None:
            if len(self._source) > MAX_FILE_SIZE:
                raise SizeLimitError(f'Map data is {len(self._source):,} bytes, over the 2GB limit!')
            self._read_lumps(self._source)
        else:
            with open(self.filename, 'rb') as file:
                size = os.fstat(file.fileno()).st_size
                if size > MAX_FILE_SIZE:
                    raise SizeLimitError(f'Map file is {size:,} bytes, over the 2GB limit!')
                self._read_lumps(file.read())

    def _read_lumps(self, data: bytes) -> None:
        """Parse the header, then split the file into lumps."""
        if len(data) < HEADER_SIZE:
            raise MalformedLump(None, f'File is only {len(data)} bytes, too small for the header!')
        if data[:4] in EXTENDED_MAGIC:
            raise BSPError(f'Extended {data[:4].decode("ascii")} maps are not supported.')

        [self.version] = HEADER_VERSION.unpack_from(data)
        if self.version != BSP_VERSION:
            try:
                game = KNOWN_VERSIONS[self.version]
            except KeyError:
                message = f'Unknown BSP version "{self.version}"!'
            else:
                message = f'BSP version {self.version} ({game}), expected {BSP_VERSION}.'
            LOGGER.warning(message)
            self.issues.append(ImportIssue(IssueKind.UNKNOWN_VERSION, message, self.version))

        # Lumps can be in any order in the file, only the offset matters.
        for lump_id in BSP_LUMPS:
            offset, length = HEADER_LUMP.unpack_from(
                data,
                HEADER_VERSION.size + HEADER_LUMP.size * lump_id.value,
            )
            if offset < 0 or length < 0 or offset + length > len(data):
                raise MalformedLump(
                    lump_id,
                    f'range {offset}+{length} lies outside the {len(data)}-byte file!',
                )
            self.lumps[lump_id] = Lump(lump_id, offset, data[offset:offset + length])

    # Lump reading code:
    def _lmp_read_planes(self, data: bytes) -> Iterator[Plane]:
        for x, y, z, dist, typ in iter_records(ST_PLANE, data):
            try:
                plane_type: Union[PlaneType, int] = PlaneType(typ)
            except ValueError:
                plane_type = typ
            yield Plane(FrozenVec(x, y, z), dist, plane_type)

    def _lmp_read_vertexes(self, data: bytes) -> List[FrozenVec]:
        return [FrozenVec(x, y, z) for x, y, z in iter_records(ST_VERTEX, data)]

    def _lmp_read_edges(self, data: bytes) -> List[Edge]:
        # The first edge is never used, since -0 = 0.
        return [Edge(v0, v1) for v0, v1 in iter_records(ST_EDGE, data)]

    def _lmp_read_surfedges(self, data: bytes) -> List[int]:
        return [ind for [ind] in iter_records(ST_SURFEDGE, data)]

    def _lmp_read_faces(self, data: bytes) -> Iterator[Face]:
        for (
            plane_num, side,
            first_edge, num_edges,
            texinfo_ind,
            style0, style1, style2, style3,
            light_offset,
        ) in iter_records(ST_FACE, data):
            yield Face(
                plane_num, side,
                first_edge, num_edges,
                texinfo_ind,
                (style0, style1, style2, style3),
                light_offset,
            )

    def _lmp_read_texinfo(self, data: bytes) -> Iterator[TexInfo]:
        """Read the texture info lump, providing positioning information."""
        for (
            sx, sy, sz, s_off,
            tx, ty, tz, t_off,
            texture, flags,
        ) in iter_records(ST_TEXINFO, data):
            yield TexInfo(
                FrozenVec(sx, sy, sz), s_off,
                FrozenVec(tx, ty, tz), t_off,
                texture, flags,
            )

    def _lmp_read_models(self, data: bytes) -> Iterator[Model]:
        """Parse the brush model definitions."""
        for (
            min_x, min_y, min_z, max_x, max_y, max_z,
            pos_x, pos_y, pos_z,
            node0, node1, node2, node3,
            vis_leafs,
            first_face, num_faces,
        ) in iter_records(ST_MODEL, data):
            yield Model(
                FrozenVec(min_x, min_y, min_z), FrozenVec(max_x, max_y, max_z),
                FrozenVec(pos_x, pos_y, pos_z),
                (node0, node1, node2, node3),
                vis_leafs,
                first_face, num_faces,
            )

    def _lmp_read_textures(self, data: bytes) -> Iterator[TextureRecord]:
        """Read the texture directory, producing the headers for each texture."""
        if not data:  # No textures at all.
            return
        [count] = struct.unpack_from('<i', data)
        for index, offset in enumerate(read_int_array(data, SIZE_INT, count)):
            if offset == -1:
                # This texture was not available when the map was compiled.
                yield TextureRecord(index, '', 0, 0, -1, (0, 0, 0, 0))
                continue
            if offset < 0 or offset + ST_TEX_HEADER.size > len(data):
                raise MalformedLump(
                    BSP_LUMPS.TEXTURES,
                    f'texture #{index} header at {offset} lies outside the lump!',
                )
            name, width, height, *mip_offsets = ST_TEX_HEADER.unpack_from(data, offset)
            yield TextureRecord(
                index,
                read_fixed_str(name),
                width, height,
                offset,
                tuple(mip_offsets),  # type: ignore[arg-type]
            )

    def _lmp_read_lighting(self, data: bytes) -> bytes:
        return data

    def read_mip(self, texture: TextureRecord, level: int) -> bytes:
        """Read the raw pixels for a mip level of a texture, as stored in the file."""
        width = texture.width >> level
        height = texture.height >> level
        start = texture.offset + texture.mip_offsets[level]
        data = self.lumps[BSP_LUMPS.TEXTURES].data
        if texture.offset < 0 or start + width * height > len(data):
            raise MalformedLump(
                BSP_LUMPS.TEXTURES,
                f'mip {level} of texture "{texture.name}" lies outside the lump!',
            )
        return data[start:start + width * height]
