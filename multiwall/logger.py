# multiwall/logger.py

"""
Logger module.

Every multiwall module logs through `get_logger(__name__)`. The root logger
gets one console handler on first use, with a column layout that is coloured
on a terminal and plain everywhere else. It is a module-level utility rather
than a service so screens, controllers and the relay can log before any
configuration is loaded.
"""

import logging
import os
import sys

DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR
CRITICAL = logging.CRITICAL

_RESET = "\033[0m"
_DIM = "\033[90m"

# level name → (level column colour, message colour)
_STYLES = {
    "DEBUG": ("\033[36m", _DIM),
    "INFO": ("\033[32m", "\033[97m"),
    "WARNING": ("\033[33m", "\033[33m"),
    "ERROR": ("\033[31m", "\033[1;31m"),
    "CRITICAL": ("\033[1;37;41m", "\033[1;37;41m"),
}


def _resolve_level(level: int | str) -> int:
    """Accept a level number or a case-insensitive level name (unknown names mean INFO)."""
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.upper(), INFO)


def _stream_supports_color(stream) -> bool:
    if not getattr(stream, "isatty", None) or not stream.isatty():
        return False
    if os.name == "nt":
        return bool(os.environ.get("TERM") or "ANSICON" in os.environ)
    return True


class WallCustomFormatter(logging.Formatter):
    """`time | LEVEL | logger | message - (func - file:line)`, optionally coloured."""

    def __init__(self, use_colors: bool = True):
        super().__init__(datefmt="%y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and _stream_supports_color(sys.stdout)

    def format(self, record: logging.LogRecord) -> str:
        record.asctime = self.formatTime(record, self.datefmt)
        where = f"- ({record.funcName} - {record.filename}:{record.lineno})"
        level = f"{record.levelname:<8}"
        body = f"{record.name:<24} | {record.getMessage()}"

        if self.use_colors:
            level_color, message_color = _STYLES.get(record.levelname, (_RESET, _RESET))
            line = (
                f"{_DIM}{record.asctime}{_RESET} | "
                f"{level_color}{level}{_RESET} | "
                f"{message_color}{body}{_RESET} {_DIM}{where}{_RESET}"
            )
        else:
            line = f"{record.asctime} | {level} | {body} {where}"

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{record.exc_text}"
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line


_handler: logging.Handler | None = None
_root_logger: logging.Logger | None = None


def _initialize_logging() -> None:
    """Attach the console handler to the root logger once."""
    global _handler, _root_logger

    if _handler is not None:
        return

    _handler = logging.StreamHandler()
    _handler.setFormatter(WallCustomFormatter())
    _root_logger = logging.getLogger()
    _root_logger.addHandler(_handler)
    _set_level_from_env()


def _set_level_from_env() -> None:
    """WALL_DEV_MODE=true forces DEBUG, otherwise WALL_LOG_LEVEL applies."""
    if _handler is None:
        return
    dev_mode = os.getenv("WALL_DEV_MODE", "false").lower() in ("1", "true")
    _apply_level(DEBUG if dev_mode else _resolve_level(os.getenv("WALL_LOG_LEVEL", "INFO")))


def _apply_level(level: int) -> None:
    _handler.setLevel(level)
    _root_logger.setLevel(level)


def set_level(level: int | str) -> None:
    """Set the console and root level, by number or name ("DEBUG", "info", ...)."""
    _initialize_logging()
    _apply_level(_resolve_level(level))


def get_logger(name: str | None = None, level: int | str | None = None) -> logging.Logger:
    """
    Get a logger that writes through the multiwall console handler.

    Usage:
        log = get_logger(__name__)
        log.info("Screen subscribed")
    """
    _initialize_logging()
    if level is not None:
        set_level(level)
    return logging.getLogger(name)


def add_file_handler(
    filepath: str, level: int | str | None = None, use_colors: bool = False
) -> logging.Handler:
    """Also write the root logger's records to *filepath* (uncoloured by default)."""
    _initialize_logging()
    file_handler = logging.FileHandler(filepath, encoding="utf-8")
    file_handler.setFormatter(WallCustomFormatter(use_colors=use_colors))
    if level is not None:
        file_handler.setLevel(_resolve_level(level))
    logging.getLogger().addHandler(file_handler)
    return file_handler


def configure_logging(
    level: int | str | None = None,
    file_path: str | None = None,
    file_level: int | str | None = None,
) -> None:
    """Set the console level and optionally add a log file, as the CLI does at startup."""
    if level is not None:
        set_level(level)
    if file_path:
        add_file_handler(file_path, file_level)
