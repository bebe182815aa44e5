"""Helpers for performing tests."""
from typing import Dict, List, Optional, Sequence, Tuple
import struct

from q1bsp.bsp import (
    BSP_LUMPS, BSP_VERSION, HEADER_LUMP, HEADER_SIZE, HEADER_VERSION, MIP_LEVELS,
    ST_EDGE, ST_FACE, ST_MODEL, ST_PLANE, ST_SURFEDGE, ST_TEX_HEADER, ST_TEXINFO, ST_VERTEX,
)
from q1bsp.math import Tuple3


__all__ = ['MapBuilder', 'pack_bsp', 'quad_map', 'texture_pixels', 'EPSILON']

# Precision of 32-bit floats is limited.
EPSILON = 1e-5


def pack_bsp(
    lumps: Dict[BSP_LUMPS, bytes],
    version: int = BSP_VERSION,
    order: Optional[Sequence[BSP_LUMPS]] = None,
) -> bytes:
    """Pack lump data into a complete file. Missing lumps are left empty.

    The header always lists lumps in their usual order, but the data can be laid out differently.
    """
    positions: Dict[BSP_LUMPS, Tuple[int, int]] = {}
    body = []
    offset = HEADER_SIZE
    for lump in (BSP_LUMPS if order is None else order):
        data = lumps.get(lump, b'')
        positions[lump] = (offset, len(data))
        body.append(data)
        offset += len(data)
    header = [HEADER_VERSION.pack(version)]
    for lump in BSP_LUMPS:
        header.append(HEADER_LUMP.pack(*positions.get(lump, (HEADER_SIZE, 0))))
    return b''.join(header + body)


def texture_pixels(width: int, height: int) -> List[bytes]:
    """Generate mip data, where each row is filled with its row number."""
    mips = []
    for level in range(MIP_LEVELS):
        w, h = width >> level, height >> level
        mips.append(b''.join(bytes([y % 256]) * w for y in range(h)))
    return mips


class MapBuilder:
    """Accumulates records, to produce a synthetic map."""
    def __init__(self) -> None:
        self.planes: List[Tuple[Tuple3, float, int]] = []
        self.vertexes: List[Tuple3] = []
        # Edge 0 can't be referenced by surfedges.
        self.edges: List[Tuple[int, int]] = [(0, 0)]
        self.surfedges: List[int] = []
        self.faces: List[tuple] = []
        self.texinfo: List[tuple] = []
        # Either (name, width, height, mips), or None for a missing texture.
        self.textures: List[Optional[Tuple[str, int, int, List[bytes]]]] = []
        self.models: List[tuple] = []
        self.lighting = b''
        self.version = BSP_VERSION

    def add_plane(self, normal: Tuple3, dist: float = 0.0, kind: int = 2) -> int:
        self.planes.append((normal, dist, kind))
        return len(self.planes) - 1

    def add_vertex(self, x: float, y: float, z: float) -> int:
        self.vertexes.append((x, y, z))
        return len(self.vertexes) - 1

    def add_texture(
        self, name: str, width: int, height: int,
        mips: Optional[List[bytes]] = None,
    ) -> int:
        """Add a texture. Pixel data is generated if not provided and the size is sensible."""
        if mips is None:
            mips = texture_pixels(width, height) if 0 < width < 4096 and 0 < height < 4096 else []
        self.textures.append((name, width, height, mips))
        return len(self.textures) - 1

    def add_missing_texture(self) -> int:
        self.textures.append(None)
        return len(self.textures) - 1

    def add_texinfo(
        self,
        texture: int,
        s_axis: Tuple3 = (1.0, 0.0, 0.0), s_offset: float = 0.0,
        t_axis: Tuple3 = (0.0, 1.0, 0.0), t_offset: float = 0.0,
        flags: int = 0,
    ) -> int:
        self.texinfo.append((*s_axis, s_offset, *t_axis, t_offset, texture, flags))
        return len(self.texinfo) - 1

    def add_face(
        self,
        verts: Sequence[int],
        texinfo: int,
        plane: int = 0,
        side: int = 0,
        styles: Tuple[int, int, int, int] = (0, 255, 255, 255),
        lightmap_offset: int = 0,
        reverse_edges: bool = False,
    ) -> int:
        """Add a face, creating edges running around the vertex loop.

        If reversed, edges are stored backwards and referenced with negative surfedges.
        """
        first_edge = len(self.surfedges)
        count = len(verts)
        if count >= 3:
            for i, vert in enumerate(verts):
                nxt = verts[(i + 1) % count]
                if reverse_edges:
                    self.edges.append((nxt, vert))
                    self.surfedges.append(-(len(self.edges) - 1))
                else:
                    self.edges.append((vert, nxt))
                    self.surfedges.append(len(self.edges) - 1)
        self.faces.append((plane, side, first_edge, count, texinfo, *styles, lightmap_offset))
        return len(self.faces) - 1

    def add_model(
        self,
        first_face: int,
        num_faces: int,
        mins: Tuple3 = (0.0, 0.0, 0.0),
        maxs: Tuple3 = (0.0, 0.0, 0.0),
        origin: Tuple3 = (0.0, 0.0, 0.0),
    ) -> int:
        self.models.append((*mins, *maxs, *origin, 0, 0, 0, 0, 0, first_face, num_faces))
        return len(self.models) - 1

    def build_textures(self) -> bytes:
        """Pack the texture directory, with each header followed by its mips."""
        if not self.textures:
            return b''
        offsets = []
        blocks = []
        pos = 4 + 4 * len(self.textures)
        for tex in self.textures:
            if tex is None:
                offsets.append(-1)
                continue
            name, width, height, mips = tex
            mip_offsets = [0] * MIP_LEVELS
            mip_pos = ST_TEX_HEADER.size
            for level, mip in enumerate(mips):
                mip_offsets[level] = mip_pos
                mip_pos += len(mip)
            offsets.append(pos)
            block = ST_TEX_HEADER.pack(name.encode('ascii'), width, height, *mip_offsets) + b''.join(mips)
            blocks.append(block)
            pos += len(block)
        return struct.pack(f'<i{len(offsets)}i', len(offsets), *offsets) + b''.join(blocks)

    def lumps(self) -> Dict[BSP_LUMPS, bytes]:
        return {
            BSP_LUMPS.PLANES: b''.join(ST_PLANE.pack(*normal, dist, kind) for normal, dist, kind in self.planes),
            BSP_LUMPS.TEXTURES: self.build_textures(),
            BSP_LUMPS.VERTEXES: b''.join(ST_VERTEX.pack(*vert) for vert in self.vertexes),
            BSP_LUMPS.TEXINFO: b''.join(ST_TEXINFO.pack(*info) for info in self.texinfo),
            BSP_LUMPS.FACES: b''.join(ST_FACE.pack(*face) for face in self.faces),
            BSP_LUMPS.LIGHTING: self.lighting,
            BSP_LUMPS.EDGES: b''.join(ST_EDGE.pack(*edge) for edge in self.edges),
            BSP_LUMPS.SURFEDGES: b''.join(ST_SURFEDGE.pack(ind) for ind in self.surfedges),
            BSP_LUMPS.MODELS: b''.join(ST_MODEL.pack(*model) for model in self.models),
        }

    def build(self, order: Optional[Sequence[BSP_LUMPS]] = None) -> bytes:
        """Produce the file, optionally with the lump data in a different order."""
        return pack_bsp(self.lumps(), self.version, order)


def quad_map() -> MapBuilder:
    """A map with a single 64x64 floor quad, using a 16x16 texture."""
    builder = MapBuilder()
    builder.add_plane((0.0, 0.0, 1.0))
    verts = [
        builder.add_vertex(0, 0, 0),
        builder.add_vertex(64, 0, 0),
        builder.add_vertex(64, 64, 0),
        builder.add_vertex(0, 64, 0),
    ]
    tex = builder.add_texture('floor', 16, 16)
    info = builder.add_texinfo(tex)
    builder.add_face(verts, info)
    builder.add_model(0, 1, maxs=(64.0, 64.0, 0.0))
    builder.lighting = bytes(range(100))
    return builder
