"""Convert the faces of each brush model into triangle meshes.

Each model produces a single vertex buffer, and one index buffer for each texture array its faces
use. Faces are convex polygons, defined by a loop of edges. These are converted into a triangle fan.

Positions are converted from Quake's Z-up space to Y-up, and scaled. Each vertex has a few
attributes:

* ``uv0``: The texture coordinates, normalised to the size of the texture.
* ``uv1``: Lightmap coordinates, in luxels relative to the corner of the face's lightmap.
* ``uv2``: The lightmap size in luxels, then the lightmap offset and the texture array layer. These
  last two are kept as exact integers. :py:meth:`VertexBuffer.pack_uv2` produces the channel as
  four 32-bit values, for shaders to reinterpret the integer bits.
* ``color``: The four light styles of the face.
"""
from typing import Dict, Final, List, Optional, Sequence, Tuple
import math
import struct

import attrs

from q1bsp import logger
from q1bsp.bsp import (
    BSP, BSPError, BSP_LUMPS, Edge, Face, ImportIssue, IssueKind, MalformedLump, Model, Plane,
    TexInfo, TextureRecord,
)
from q1bsp.math import FrozenVec
from q1bsp.textures import TextureAtlasSet, TextureSlot


__all__ = [
    'LUXEL_SIZE', 'DEFAULT_SCALE',
    'UnresolvedTextureIndex', 'VertexBuffer', 'SubMesh', 'ModelMesh',
    'face_normal', 'face_winding', 'fan_triangulate', 'texture_uv', 'lightmap_uv',
    'GeometryBuilder',
]

LOGGER = logger.get_logger(__name__)
#: The number of world units each lightmap sample covers.
LUXEL_SIZE: Final = 16.0
#: Player height in the destination units, divided by Quake's.
DEFAULT_SCALE: Final = 1.67 / 58.0

UV = Tuple[float, float]
Color = Tuple[int, int, int, int]
#: Lightmap width and height, then the lightmap offset and texture layer.
Aux = Tuple[float, float, int, int]

ST_AUX: Final = struct.Struct('<2f2i')


class UnresolvedTextureIndex(BSPError):
    """A face refers to a texinfo or texture which does not exist."""
    def __init__(self, face: int, message: str) -> None:
        super().__init__(f'Face #{face}: {message}')
        self.face = face


@attrs.define(eq=False)
class VertexBuffer:
    """The vertices of a model, as parallel lists of attributes."""
    positions: List[FrozenVec] = attrs.Factory(list)
    normals: List[FrozenVec] = attrs.Factory(list)
    colors: List[Color] = attrs.Factory(list)
    uv0: List[UV] = attrs.Factory(list)
    uv1: List[UV] = attrs.Factory(list)
    uv2: List[Aux] = attrs.Factory(list)

    def __len__(self) -> int:
        return len(self.positions)

    def append(self, pos: FrozenVec, normal: FrozenVec, color: Color, uv0: UV, uv1: UV) -> int:
        """Add a vertex, returning its index.

        The auxiliary channel is filled in once the whole face is known.
        """
        index = len(self.positions)
        self.positions.append(pos)
        self.normals.append(normal)
        self.colors.append(color)
        self.uv0.append(uv0)
        self.uv1.append(uv1)
        self.uv2.append((0.0, 0.0, 0, 0))
        return index

    def pack_uv2(self) -> bytes:
        """Pack the auxiliary channel as little-endian 32-bit values, 16 bytes per vertex.

        The integers keep their exact bit patterns.
        """
        return b''.join([ST_AUX.pack(*aux) for aux in self.uv2])


@attrs.define(eq=False)
class SubMesh:
    """The triangles in a model which use a single texture array."""
    #: Index into the texture atlas list.
    atlas_bin: int
    #: Vertex indexes, three per triangle.
    indices: List[int] = attrs.Factory(list)

    @property
    def triangle_count(self) -> int:
        """The number of triangles in the submesh."""
        return len(self.indices) // 3


@attrs.define(eq=False)
class ModelMesh:
    """The mesh produced for a brush model."""
    #: The index of the model in the BSP, 0 being the world.
    index: int
    vertices: VertexBuffer
    submeshes: List[SubMesh]
    #: The position of the model, in Y-up space. This is not scaled.
    origin: FrozenVec
    mins: FrozenVec
    maxs: FrozenVec

    @property
    def atlas_bins(self) -> List[int]:
        """The texture array used by each submesh, in order."""
        return [sub.atlas_bin for sub in self.submeshes]

    @property
    def triangle_count(self) -> int:
        """The total number of triangles in the mesh."""
        return sum(sub.triangle_count for sub in self.submeshes)


def face_normal(plane: Plane, side: int) -> FrozenVec:
    """Compute the Y-up normal for a face, flipping it if it's on the back of the plane."""
    normal = plane.normal.swap_yz()
    if side != 0:
        normal = -normal
    return normal.norm()


def face_winding(face: Face, surfedges: Sequence[int], edges: Sequence[Edge]) -> List[int]:
    """Compute the loop of vertex indexes for a face.

    Each edge is walked forward if the surfedge is positive or backward if negative. Edges are
    connected, so the first vertex of each is enough to produce the whole loop.

    :raises MalformedLump: If the face refers to missing or invalid edges.
    """
    start = face.first_edge
    end = start + face.num_edges
    if start < 0 or end > len(surfedges):
        raise MalformedLump(
            BSP_LUMPS.SURFEDGES,
            f'edges {start}-{end} lie outside the {len(surfedges)} surfedges!',
        )
    winding = []
    for surfedge in surfedges[start:end]:
        if surfedge == 0 or abs(surfedge) >= len(edges):
            raise MalformedLump(BSP_LUMPS.EDGES, f'invalid surfedge {surfedge}!')
        edge = edges[abs(surfedge)]
        winding.append(edge.v1 if surfedge < 0 else edge.v0)
    return winding


def fan_triangulate(polygon: Sequence[int]) -> List[int]:
    """Split a convex polygon into a triangle fan around the first vertex.

    An n-sided polygon produces n - 2 triangles, returned as a flat list of indexes.
    """
    tris = []
    for v in range(len(polygon) - 2):
        tris += [polygon[0], polygon[v + 1], polygon[v + 2]]
    return tris


def texture_uv(point: FrozenVec, texinfo: TexInfo, width: int, height: int) -> UV:
    """Project a point in file space to texture coordinates.

    V is negated, since the rows of textures are flipped in the atlases. If the texture has a zero
    size, that axis is left at zero.
    """
    s = point.dot(texinfo.s_axis) + texinfo.s_offset
    t = point.dot(texinfo.t_axis) + texinfo.t_offset
    return (
        s / width if width else 0.0,
        -t / height if height else 0.0,
    )


def lightmap_uv(point: FrozenVec, texinfo: TexInfo) -> UV:
    """Project a point in file space to unscaled lightmap coordinates."""
    return point.dot(texinfo.s_axis), point.dot(texinfo.t_axis)


class GeometryBuilder:
    """Builds meshes for the models in a BSP.

    The texture atlases must be built first, since those determine the submeshes.
    """
    def __init__(
        self,
        bsp: BSP,
        atlases: TextureAtlasSet,
        scale: float = DEFAULT_SCALE,
        share_vertices: bool = True,
    ) -> None:
        self.bsp = bsp
        self.atlases = atlases
        self.scale = scale
        self.share_vertices = share_vertices

        self.planes = bsp.planes
        self.vertexes = bsp.vertexes
        self.edges = bsp.edges
        self.surfedges = bsp.surfedges
        self.faces = bsp.faces
        self.texinfo = bsp.texinfo
        self.textures = bsp.textures

    def _model_faces(self, model: Model) -> Sequence[Face]:
        """Fetch the faces for a model."""
        start = model.first_face
        end = start + model.num_faces
        if start < 0 or model.num_faces < 0 or end > len(self.faces):
            raise MalformedLump(
                BSP_LUMPS.FACES,
                f'faces {start}-{end} lie outside the {len(self.faces)} faces!',
            )
        return self.faces[start:end]

    def resolve_texture(self, face_ind: int, face: Face) -> Tuple[TexInfo, TextureRecord, TextureSlot]:
        """Locate the texture positioning, texture header and atlas slot used by a face.

        :raises UnresolvedTextureIndex: If any of these do not exist.
        """
        if not 0 <= face.texinfo < len(self.texinfo):
            raise UnresolvedTextureIndex(face_ind, f'texinfo #{face.texinfo} does not exist!')
        texinfo = self.texinfo[face.texinfo]
        slot: Optional[TextureSlot] = None
        if 0 <= texinfo.texture < len(self.textures):
            slot = self.atlases.slot(texinfo.texture)
        if slot is None:
            raise UnresolvedTextureIndex(face_ind, f'texture #{texinfo.texture} does not exist!')
        return texinfo, self.textures[texinfo.texture], slot

    def build(self, issues: List[ImportIssue]) -> List[ModelMesh]:
        """Build every model.

        Models with faces referring to missing textures are skipped, and reported in ``issues``.
        """
        meshes = []
        for index in range(len(self.bsp.models)):
            try:
                meshes.append(self.build_model(index, issues))
            except UnresolvedTextureIndex as exc:
                message = f'Model #{index} skipped: {exc}'
                LOGGER.error(message)
                issues.append(ImportIssue(IssueKind.UNRESOLVED_TEXTURE, message, index))
        return meshes

    def build_model(self, index: int, issues: List[ImportIssue]) -> ModelMesh:
        """Build the mesh for a single model."""
        model = self.bsp.models[index]
        faces = self._model_faces(model)
        with logger.context(f'model {index}'):
            LOGGER.debug('Building {} faces', len(faces))
            # Assign submeshes in the order the texture arrays are first used.
            bin_to_submesh: Dict[int, int] = {}
            submeshes: List[SubMesh] = []
            face_textures = []
            for face_off, face in enumerate(faces):
                resolved = self.resolve_texture(model.first_face + face_off, face)
                face_textures.append(resolved)
                atlas_bin = resolved[2].bin
                if atlas_bin not in bin_to_submesh:
                    bin_to_submesh[atlas_bin] = len(submeshes)
                    submeshes.append(SubMesh(atlas_bin))

            verts = VertexBuffer()
            # Global vertex index -> index in our buffer.
            vert_lookup: Dict[int, int] = {}
            for face_off, face in enumerate(faces):
                face_ind = model.first_face + face_off
                if face.num_edges < 3:
                    message = f'Degenerate face #{face_ind} with {face.num_edges} edges, skipping'
                    LOGGER.warning(message)
                    issues.append(ImportIssue(IssueKind.DEGENERATE_FACE, message, face_ind))
                    continue
                texinfo, texture, slot = face_textures[face_off]
                polygon = self._add_face(verts, vert_lookup, face, texinfo, texture, slot)
                submeshes[bin_to_submesh[slot.bin]].indices += fan_triangulate(polygon)

        return ModelMesh(
            index,
            verts,
            submeshes,
            model.origin.swap_yz(),
            model.mins.swap_yz(),
            model.maxs.swap_yz(),
        )

    def _add_face(
        self,
        verts: VertexBuffer,
        vert_lookup: Dict[int, int],
        face: Face,
        texinfo: TexInfo,
        texture: TextureRecord,
        slot: TextureSlot,
    ) -> List[int]:
        """Write the vertices for a face, then return the polygon as local vertex indexes."""
        if not 0 <= face.plane < len(self.planes):
            raise MalformedLump(BSP_LUMPS.PLANES, f'plane #{face.plane} does not exist!')
        normal = face_normal(self.planes[face.plane], face.side)
        color: Color = face.styles

        polygon: List[int] = []
        added: List[int] = []
        min_u = min_v = math.inf
        max_u = max_v = -math.inf

        for vert_ind in face_winding(face, self.surfedges, self.edges):
            if not 0 <= vert_ind < len(self.vertexes):
                raise MalformedLump(BSP_LUMPS.VERTEXES, f'vertex #{vert_ind} does not exist!')
            point = self.vertexes[vert_ind]
            lm_uv = lightmap_uv(point, texinfo)
            min_u = min(min_u, lm_uv[0])
            min_v = min(min_v, lm_uv[1])
            max_u = max(max_u, lm_uv[0])
            max_v = max(max_v, lm_uv[1])

            if self.share_vertices and vert_ind in vert_lookup:
                # The first face to use a vertex decides its attributes.
                polygon.append(vert_lookup[vert_ind])
                continue
            local = verts.append(
                point.swap_yz() * self.scale,
                normal,
                color,
                texture_uv(point, texinfo, texture.width, texture.height),
                lm_uv,
            )
            vert_lookup[vert_ind] = local
            polygon.append(local)
            added.append(local)

        min_bb_u = math.floor(min_u / LUXEL_SIZE)
        min_bb_v = math.floor(min_v / LUXEL_SIZE)
        aux: Aux = (
            float(math.ceil(max_u / LUXEL_SIZE) - min_bb_u),
            float(math.ceil(max_v / LUXEL_SIZE) - min_bb_v),
            face.lightmap_offset,
            slot.layer,
        )
        for local in added:
            u, v = verts.uv1[local]
            verts.uv1[local] = (u / LUXEL_SIZE - min_bb_u + 0.5, v / LUXEL_SIZE - min_bb_v + 0.5)
            verts.uv2[local] = aux
        return polygon
