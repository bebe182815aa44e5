"""Import a Quake BSP, then print a summary of the meshes and textures produced."""
from typing import List
import argparse
import sys

from q1bsp import logger
from q1bsp.bsp import BSPError
from q1bsp.geometry import DEFAULT_SCALE
from q1bsp.importer import ImportConfig, ImportResult, import_bsp


def summarise(result: ImportResult) -> None:
    """Print out the contents of an import."""
    print(f'BSP version {result.version}')
    print(f'{len(result.texture_atlases)} texture arrays:')
    for ind, atlas in enumerate(result.texture_atlases):
        print(
            f' - #{ind}: {atlas.width}x{atlas.height}, {atlas.layer_count} layers, '
            f'{atlas.mip_count} mips{" (CORRUPT)" if atlas.corrupt else ""}'
        )
        for name in atlas.names:
            print(f'     {name}')

    if result.fullbright:
        print('Lightmap: none, map is fullbright')
    else:
        print(f'Lightmap: {result.lightmap.width}x{result.lightmap.height}')

    print(f'{len(result.models)} models:')
    for mesh in result.models:
        print(
            f' - *{mesh.index}: {len(mesh.vertices)} vertices, {mesh.triangle_count} triangles, '
            f'{len(mesh.submeshes)} submeshes using arrays {mesh.atlas_bins}, origin ({mesh.origin})'
        )

    if result.issues:
        print(f'{len(result.issues)} issues:')
        for issue in result.issues:
            print(f' - {issue}')


def main(args: List[str]) -> int:
    """Main script."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--scale",
        help=f"multiplier applied to positions. Defaults to {DEFAULT_SCALE:.6f}.",
        type=float,
        default=DEFAULT_SCALE,
    )
    parser.add_argument(
        "--no-share",
        help="give every face its own copy of each vertex, instead of sharing them.",
        action='store_false',
        dest='share_vertices',
    )
    parser.add_argument(
        "--log",
        help="also write the full log to this file.",
        metavar='FILE',
    )
    parser.add_argument(
        "map",
        help="the BSP file to read.",
    )

    result = parser.parse_args(args)
    log = logger.init_logging(result.log)

    try:
        config = ImportConfig(result.scale, result.share_vertices)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        imported = import_bsp(result.map, config)
    except (BSPError, OSError) as exc:
        log.error('Could not import "{}": {}', result.map, exc)
        return 1
    summarise(imported)
    return 0


def entry() -> None:
    """Entry point for the installed script."""
    sys.exit(main(sys.argv[1:]))


if __name__ == '__main__':
    entry()
