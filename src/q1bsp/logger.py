"""
Wrapper around logging to provide our own functionality.

This adds the ability to log using str.format() instead of %, and to tag
every message logged inside a block with some context (the model being built, etc).
"""
from typing import (
    TYPE_CHECKING, Any, Dict, Generator, Mapping, Optional, Tuple, Type, Union, cast,
)
from types import TracebackType
import contextlib
import contextvars
import logging
import os
import sys

from q1bsp import StringPath


__all__ = ['LoggerAdapter', 'get_logger', 'init_logging', 'context']
ROOT_NAME = 'q1bsp'
# Only generic in stubs!
CTX_STACK: 'contextvars.ContextVar[Tuple[str, ...]]' = contextvars.ContextVar('q1bsp_logger', default=())


class LogMessage:
    """Allow using str.format() in logging messages.

    The __str__() method performs the joining.
    """
    def __init__(self, fmt: str, args: Tuple[object, ...], kwargs: Dict[str, object]) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs

    def __str__(self) -> str:
        # Only format if we have arguments!
        # That way { or } can be used in regular messages.
        if self.args or self.kwargs:
            msg = self.fmt.format(*self.args, **self.kwargs)
        else:
            msg = self.fmt
        if '\n' not in msg:
            return msg
        # Indent continuation lines, so they're associated with the logging tag.
        lines = msg.rstrip().split('\n')
        return '\n | '.join(lines) + '\n |___\n'


_SysExcInfoType = Union[
    Tuple[Type[BaseException], BaseException, Optional[TracebackType]],
    Tuple[None, None, None]
]
if TYPE_CHECKING:  # Only generic in stubs.
    _AdapterBase = logging.LoggerAdapter[logging.Logger]
else:
    _AdapterBase = logging.LoggerAdapter


class LoggerAdapter(_AdapterBase):
    """Fix loggers to use str.format(), and include the current context."""
    logger: logging.Logger

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        logging.LoggerAdapter.__init__(self, logger, extra={})

    def log(
        self,
        level: int,
        msg: Any,
        *args: Any,
        exc_info: Union[None, bool, _SysExcInfoType, BaseException] = None,
        stack_info: bool = False,
        extra: Optional[Mapping[str, object]] = None,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """This version of :external:py:meth:`~logging.Logger.log()` is for str.format() compatibility.

        The message is wrapped in a :py:class:`LogMessage` object, which is given the
        ``args`` and ``kwargs``.
        """
        if self.isEnabledFor(level):
            ctx = CTX_STACK.get()
            new_extra = {} if extra is None else dict(extra)
            new_extra['q1bsp_context'] = f' ({", ".join(ctx)})' if ctx else ''

            # noinspection PyProtectedMember
            self.logger._log(
                level,
                LogMessage(str(msg), args, kwargs),
                (),  # No positional arguments, we do the formatting through LogMessage.
                extra=new_extra,
                exc_info=exc_info,
                stack_info=stack_info,
                # Skip this method, logging's own frames are skipped automatically.
                stacklevel=stacklevel + 1,
            )

    def __getattr__(self, attr: str) -> Any:
        """Delegate unknown methods to the logger."""
        return getattr(self.logger, attr)


class Formatter(logging.Formatter):
    """Ensure a default context is present for records from other libraries."""
    def format(self, record: logging.LogRecord) -> str:
        record.__dict__.setdefault('q1bsp_context', '')
        return super().format(record)


def init_logging(filename: Optional[StringPath] = None) -> logging.Logger:
    """Set up the root logger and logging handlers.

    INFO messages go to stdout (DEBUG if the ``Q1BSP_DEBUG`` environment variable is ``1``),
    warnings and errors to stderr. If a filename is provided, all messages are also written there.
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Put more info in the log file, since it's not onscreen.
    long_log_format = Formatter(
        '[{levelname}]{q1bsp_context} {module}.{funcName}(): {message}',
        style='{',
    )
    # One letter for level name
    short_log_format = Formatter(
        '[{levelname[0]}]{q1bsp_context} {message}',
        style='{',
    )

    if filename is not None:
        folder = os.path.dirname(filename)
        if folder:
            os.makedirs(folder, exist_ok=True)
        file_handler = logging.FileHandler(filename, mode='w', encoding='utf8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(long_log_format)
        logger.addHandler(file_handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(
        logging.DEBUG
        if os.environ.get('Q1BSP_DEBUG', '0') == '1' else
        logging.INFO
    )
    stdout_handler.setFormatter(short_log_format)
    # Those are handled by stderr, and we don't want duplicates.
    stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
    logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(short_log_format)
    logger.addHandler(stderr_handler)

    return get_logger()


def get_logger(name: str = '') -> logging.Logger:
    """Get the named logger object.

    This puts the logger into the ``q1bsp`` namespace, and wraps it to
    use :external:py:meth:`str.format()` instead of ``%`` formatting.
    """
    if not name:  # Allow retrieving the main logger.
        full_name = ROOT_NAME
    elif name == ROOT_NAME or name.startswith(ROOT_NAME + '.'):
        full_name = name
    else:
        full_name = f'{ROOT_NAME}.{name}'
    return cast(logging.Logger, LoggerAdapter(logging.getLogger(full_name)))


@contextlib.contextmanager
def context(name: str) -> Generator[str, None, None]:
    """Context manager to allow specifying additional information for any logs contained in this block.

    The specified string gets included in the log messages.
    """
    token = CTX_STACK.set((*CTX_STACK.get(), name))
    try:
        yield name
    finally:
        CTX_STACK.reset(token)
