"""Test the logging system."""
from typing import Iterator
from logging import Logger, getLogger as stdlib_getlogger
from pathlib import Path

import pytest


def function(logger: Logger) -> None:
    """Test detecting different methods."""
    logger.info('Starting other function')
    logger.warning('Used wrong logic')
    logger.info('Finishing.')


@pytest.fixture
def clean_root(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """init_logging() adds handlers to the root logger, discard them afterward."""
    root = stdlib_getlogger()
    monkeypatch.setattr(root, 'handlers', [])
    monkeypatch.delenv('Q1BSP_DEBUG', raising=False)
    level = root.level
    yield
    root.setLevel(level)


def test_logging_output(capsys: pytest.CaptureFixture[str], clean_root: None) -> None:
    """Test the output of logging to the console."""
    from q1bsp.logger import context, get_logger, init_logging

    root = init_logging()
    root.info('hello there')
    root.debug('Not shown')
    root.error('Root error!:\n- Something failed.')
    get_logger('another').warning('A problem: {}', 45)
    function(root)
    with context('First'):
        root.info('Message')
        with context('Second'):
            root.info('More messages')
        root.warning('A warning.')
    root.info('No {braces} formatted')

    out, err = capsys.readouterr()
    assert out.splitlines() == [
        '[I] hello there',
        '[I] Starting other function',
        '[I] Finishing.',
        '[I] (First) Message',
        '[I] (First, Second) More messages',
        '[I] No {braces} formatted',
    ]
    assert err.splitlines() == [
        '[E] Root error!:',
        ' | - Something failed.',
        ' |___',
        '',
        '[W] A problem: 45',
        '[W] Used wrong logic',
        '[W] (First) A warning.',
    ]


def test_debug_env(capsys: pytest.CaptureFixture[str], clean_root: None, monkeypatch: pytest.MonkeyPatch) -> None:
    """Debug messages can be enabled."""
    from q1bsp.logger import init_logging

    monkeypatch.setenv('Q1BSP_DEBUG', '1')
    init_logging().debug('Details: {!r}', 'abc')
    out, err = capsys.readouterr()
    assert out == "[D] Details: 'abc'\n"
    assert err == ''


def test_log_file(tmp_path: Path, capsys: pytest.CaptureFixture[str], clean_root: None) -> None:
    """Everything is written to the log file, with more detail."""
    from q1bsp.logger import get_logger, init_logging

    filename = tmp_path / 'logs' / 'import.log'
    init_logging(filename)
    get_logger('geometry').debug('Building {} faces', 12)
    get_logger('geometry').warning('Bad face')
    for handler in stdlib_getlogger().handlers:
        handler.flush()
    capsys.readouterr()

    lines = filename.read_text('utf8').splitlines()
    assert lines == [
        '[DEBUG] test_logger.test_log_file(): Building 12 faces',
        '[WARNING] test_logger.test_log_file(): Bad face',
    ]
    for handler in stdlib_getlogger().handlers:
        handler.close()


def test_logger_names() -> None:
    from q1bsp.logger import get_logger

    assert get_logger().name == 'q1bsp'
    assert get_logger('q1bsp').name == 'q1bsp'
    assert get_logger('q1bsp.bsp').name == 'q1bsp.bsp'
    assert get_logger('textures').name == 'q1bsp.textures'


def test_context_stack() -> None:
    """Contexts are popped again, even if the block raises."""
    from q1bsp.logger import CTX_STACK, context

    assert CTX_STACK.get() == ()
    with context('model 1') as name:
        assert name == 'model 1'
        with pytest.raises(KeyError):
            with context('face 8'):
                assert CTX_STACK.get() == ('model 1', 'face 8')
                raise KeyError
        assert CTX_STACK.get() == ('model 1', )
    assert CTX_STACK.get() == ()
