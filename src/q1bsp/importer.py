"""The main entry point, which decodes a map into meshes and textures."""
from typing import List, Mapping, Union

import attrs

from q1bsp import StringPath, logger
from q1bsp.bsp import BSP, ImportIssue
from q1bsp.geometry import DEFAULT_SCALE, GeometryBuilder, ModelMesh
from q1bsp.lightmap import LightmapAtlas, build_lightmap_atlas
from q1bsp.textures import TextureAtlas, TextureSlot, build_texture_atlases


__all__ = ['ImportConfig', 'ImportResult', 'import_bsp']

LOGGER = logger.get_logger(__name__)


def _check_scale(inst: 'ImportConfig', attr: 'attrs.Attribute[float]', value: float) -> None:
    """The scale must be a positive number."""
    if not value > 0.0:
        raise ValueError(f'Scale must be positive, not {value!r}!')


@attrs.frozen
class ImportConfig:
    """Options controlling how maps are converted."""
    #: Multiplier applied to positions, converting Quake units to the destination's.
    scale: float = attrs.field(default=DEFAULT_SCALE, converter=float, validator=_check_scale)
    #: If enabled, faces sharing a vertex also share its attributes, with the first face to
    #: use the vertex deciding them. Otherwise each face gets its own copy.
    share_vertices: bool = True


@attrs.frozen
class ImportResult:
    """Everything produced from a map."""
    version: int
    #: One texture array for each group of same-sized textures.
    texture_atlases: List[TextureAtlas]
    #: The atlas and layer each texture index was placed in.
    texture_slots: Mapping[int, TextureSlot]
    lightmap: LightmapAtlas
    models: List[ModelMesh]
    #: Problems which were worked around.
    issues: List[ImportIssue]

    @property
    def fullbright(self) -> bool:
        """If true, the map has no lighting, so lightmaps should not be sampled."""
        return self.lightmap.is_empty


def import_bsp(
    source: Union[StringPath, bytes, bytearray, memoryview],
    config: ImportConfig = ImportConfig(),
) -> ImportResult:
    """Read a map, producing the texture atlases, lightmap atlas and a mesh for each model.

    The source is either a filename, or the contents of the file.

    :raises BSPError: If the map is too malformed to be read.
    """
    bsp = BSP(source)
    LOGGER.info('Importing {!r}', bsp)
    issues: List[ImportIssue] = list(bsp.issues)

    atlases = build_texture_atlases(bsp, issues)
    lightmap = build_lightmap_atlas(bsp.lighting)

    builder = GeometryBuilder(bsp, atlases, config.scale, config.share_vertices)
    models = builder.build(issues)

    LOGGER.info(
        'Imported {} models, {} texture arrays, {}x{} lightmap, {} issues.',
        len(models), len(atlases), lightmap.width, lightmap.height, len(issues),
    )
    return ImportResult(
        bsp.version,
        atlases.atlases,
        atlases.slots,
        lightmap,
        models,
        issues,
    )
