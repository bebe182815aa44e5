"""Test the map summary script."""
from logging import getLogger as stdlib_getlogger
from pathlib import Path

import pytest

from helpers import quad_map
from q1bsp.scripts import dump_bsp


@pytest.fixture(autouse=True)
def clean_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """The script sets up logging, discard the handlers afterward."""
    monkeypatch.setattr(stdlib_getlogger(), 'handlers', [])


def test_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    builder = quad_map()
    builder.add_face([0, 1], 0)
    builder.models[0] = (0, 0, 0, 64, 64, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 2)
    path = tmp_path / 'e1m1.bsp'
    path.write_bytes(builder.build())

    assert dump_bsp.main([str(path), '--scale', '1', '--no-share']) == 0
    out, err = capsys.readouterr()
    assert 'BSP version 29' in out
    assert ' - #0: 16x16, 1 layers, 4 mips' in out
    assert '     floor' in out
    assert 'Lightmap: 16x8' in out
    assert ' - *0: 4 vertices, 2 triangles, 1 submeshes using arrays [0], origin (0 0 0)' in out
    assert '1 issues:' in out
    assert ' - [DEGENERATE_FACE] Degenerate face #1' in out
    assert 'Degenerate face #1 with 2 edges' in err


def test_fullbright(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    builder = quad_map()
    builder.lighting = b''
    path = tmp_path / 'unlit.bsp'
    path.write_bytes(builder.build())
    assert dump_bsp.main([str(path)]) == 0
    out, err = capsys.readouterr()
    assert 'Lightmap: none, map is fullbright' in out
    assert 'issues:' not in out


def test_bad_map(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Unreadable maps are reported, not raised."""
    path = tmp_path / 'broken.bsp'
    path.write_bytes(b'BSP2' + bytes(200))
    assert dump_bsp.main([str(path)]) == 1
    assert dump_bsp.main([str(tmp_path / 'missing.bsp')]) == 1
    out, err = capsys.readouterr()
    assert 'Could not import' in err
    assert 'not supported' in err


def test_bad_scale(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        dump_bsp.main([str(tmp_path / 'any.bsp'), '--scale', '-2'])
