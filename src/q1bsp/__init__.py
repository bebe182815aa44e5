"""Decode Quake 1 BSP maps into meshes, texture arrays and lightmaps.

The main entry point is :py:func:`import_bsp`.
"""
from typing import TYPE_CHECKING, Union
from typing_extensions import TypeAlias
import os as _os
import sys as _sys


__version__: str
if not TYPE_CHECKING:
    try:
        from ._version import __version__
    except ImportError:
        __version__ = '<unknown>'
    else:
        # Discard the now-useless module. Use globals so static analysis ignores this.
        del _sys.modules[globals().pop('_version').__name__]

__all__ = [
    '__version__', 'StringPath',
    'FrozenVec',
    'BSP', 'BSPError', 'MalformedLump', 'SizeLimitError', 'UnresolvedTextureIndex',
    'ImportIssue', 'IssueKind',
    'ImportConfig', 'ImportResult', 'import_bsp',

    # Submodules:
    'binformat', 'bsp', 'geometry', 'importer', 'lightmap', 'logger', 'math', 'textures',  # pyright: ignore
]

StringPath: TypeAlias = Union[str, '_os.PathLike[str]']

# These need StringPath to be defined first.
from q1bsp.math import FrozenVec  # noqa: E402
from q1bsp.bsp import BSP, BSPError, ImportIssue, IssueKind, MalformedLump, SizeLimitError  # noqa: E402
from q1bsp.geometry import UnresolvedTextureIndex  # noqa: E402
from q1bsp.importer import ImportConfig, ImportResult, import_bsp  # noqa: E402
