"""
Wrapper around logging, so messages can use str.format() instead of %.

Call :py:func:`init_logging` once from scripts to set up console and file output. Library modules
should only call :py:func:`get_logger`.
"""
from typing import (
    TYPE_CHECKING, Any, Callable, Dict, Generator, List, Mapping, Optional, Tuple, Type, Union,
    cast,
)
from pathlib import Path
from types import TracebackType
import contextlib
import contextvars
import logging
import os
import sys

from powerslave import StringPath


__all__ = ['LoggerAdapter', 'get_handler', 'get_logger', 'init_logging', 'context']
# Only generic in stubs!
CTX_STACK: 'contextvars.ContextVar[List[str]]' = contextvars.ContextVar('powerslave_logger')
#: If set to 1, show debug messages on the console.
DEBUG_VAR = 'POWERSLAVE_DEBUG'


class LogMessage:
    """Allow using str.format() in logging messages.

    The __str__() method performs the joining.
    """
    fmt: str
    args: Tuple[object, ...]
    kwargs: Dict[str, object]

    def __init__(self, fmt: str, args: Tuple[object, ...], kwargs: Dict[str, object]) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs

    def __str__(self) -> str:
        """Format the string, and indent multi-line messages."""
        # Only format if we have arguments!
        # That way { or } can be used in regular messages.
        if self.args or self.kwargs:
            msg = self.fmt.format(*self.args, **self.kwargs)
        else:
            msg = self.fmt

        if '\n' not in msg:
            return msg
        lines = msg.rstrip().split('\n')
        # [I] A multi-line message looks like the following:
        # | blah
        # | blah
        # |___
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
    """Fix loggers to use str.format()."""
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
        stacklevel: int = 0,
        **kwargs: Any,
    ) -> None:
        """Log a message, formatting it with ``args`` and ``kwargs``."""
        if self.isEnabledFor(level):
            ctx = ', '.join(CTX_STACK.get([]))
            new_extra = {} if extra is None else dict(extra)
            new_extra['powerslave_context'] = f' ({ctx})' if ctx else ''

            # Skip over our wrapper frames.
            stacklevel += 2

            # noinspection PyProtectedMember
            self.logger._log(
                level,
                LogMessage(str(msg), args, kwargs),
                (),  # No positional arguments, we do the formatting through LogMessage.
                extra=new_extra,
                exc_info=exc_info,
                stack_info=stack_info,
                stacklevel=stacklevel,
            )

    def __getattr__(self, attr: str) -> Any:
        """Delegate unknown methods to the logger."""
        return getattr(self.logger, attr)


class Formatter(logging.Formatter):
    """Ensure the context is always present."""
    def format(self, record: logging.LogRecord) -> str:
        """Ensure a default context is set in the record."""
        record.__dict__.setdefault('powerslave_context', '')
        return super().format(record)


def get_handler(filename: StringPath) -> logging.FileHandler:
    """Cycle log files, then give the required file handler."""
    path = Path(filename)
    ext = ''.join(path.suffixes)
    suffixes = ('.3', '.2', '.1', '')

    try:
        # Remove the oldest one, then shift each down to make space.
        path.with_suffix(suffixes[0] + ext).unlink(missing_ok=True)
        for frm, to in zip(suffixes[1:], suffixes):
            try:
                path.with_suffix(frm + ext).rename(path.with_suffix(to + ext))
            except FileNotFoundError:
                pass
    except PermissionError:
        # Another copy of us has it open. Just append.
        pass
    return logging.FileHandler(path, mode='a', encoding='utf8')


def init_logging(
    filename: Optional[StringPath] = None,
    main_logger: str = '',
    *,
    error: Optional[Callable[[BaseException], object]] = None,
) -> logging.Logger:
    """Set up the logger and logging handlers.

    This also sets :py:func:`sys.excepthook`, so uncaught exceptions are captured.

    :param filename: If this is set, all logs will be written to this file as well.
    :param main_logger: Specify the name of the logger to produce under the ``powerslave`` hierachy.
    :param error: A function to call when uncaught exceptions are thrown.
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Put more info in the log file, since it's not onscreen.
    long_log_format = Formatter(
        '[{levelname}]{powerslave_context} {module}.{funcName}(): {message}',
        style='{',
    )
    # One letter for the level name on the console.
    short_log_format = Formatter(
        '[{levelname[0]}]{powerslave_context} {message}',
        style='{',
    )

    if filename is not None:
        # Make the directories the logs are in, if needed.
        os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)
        log_handler = get_handler(filename)
        log_handler.setLevel(logging.DEBUG)
        log_handler.setFormatter(long_log_format)
        logger.addHandler(log_handler)

    if sys.stdout is not None:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(
            logging.DEBUG
            if os.environ.get(DEBUG_VAR, '0') == '1' else
            logging.INFO
        )
        stdout_handler.setFormatter(short_log_format)
        # Warnings and up go to stderr, don't duplicate them.
        stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
        logger.addHandler(stdout_handler)

    if sys.stderr is not None:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(short_log_format)
        logger.addHandler(stderr_handler)

    old_except_handler = sys.excepthook

    def except_handler(
        exc_type: Type[BaseException],
        exc_value: BaseException,
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Log uncaught exceptions."""
        if isinstance(exc_value, SystemExit):
            return
        logger.error(
            'Uncaught Exception:',
            exc_info=(exc_type, exc_value, exc_tb),
        )
        if error is not None:
            error(exc_value)
        # Call the original handler - that prints to the normal console.
        if old_except_handler is not sys.__excepthook__:
            old_except_handler(exc_type, exc_value, exc_tb)

    sys.excepthook = except_handler
    return get_logger(main_logger)


def get_logger(name: str = '') -> logging.Logger:
    """Get the named logger object.

    This puts the logger into the ``powerslave`` namespace, and wraps it to
    use :external:py:meth:`str.format()` instead of ``%`` formatting.
    """
    if name.startswith('powerslave.') or name == 'powerslave':
        log = logging.getLogger(name)
    elif name:
        log = logging.getLogger('powerslave.' + name)
    else:  # Allow retrieving the main logger.
        log = logging.getLogger('powerslave')
    return cast(logging.Logger, LoggerAdapter(log))


@contextlib.contextmanager
def context(name: str) -> Generator[str, None, None]:
    """Context manager to allow specifying additional information for any logs contained in this block.

    The specified string gets included in the log messages.
    """
    stack = CTX_STACK.get([])
    # Copy, so other threads/contexts don't see our additions.
    token = CTX_STACK.set([*stack, name])
    try:
        yield name
    finally:
        CTX_STACK.reset(token)
