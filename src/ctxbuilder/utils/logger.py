# logger.py
import logging
import sys
import os

import colorlog

from .. import constants

_PLAIN_FORMAT = '[%(levelname).4s] %(name)s: %(message)s'
_COLOR_FORMAT = '%(log_color)s[%(levelname).4s]%(reset)s %(cyan)s%(name)s%(reset)s: %(message)s'
_FILE_FORMAT = '%(asctime)s [%(levelname).4s] %(name)s: %(message)s'

_LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def _console_formatter(stream) -> logging.Formatter:
    # Respect NO_COLOR env var (https://no-color.org/)
    if stream.isatty() and not os.environ.get("NO_COLOR"):
        return colorlog.ColoredFormatter(_COLOR_FORMAT, log_colors=_LOG_COLORS, reset=True, style='%')
    return logging.Formatter(_PLAIN_FORMAT)


def setup_logger(debug: bool = False, module_levels: dict | None = None, log_file: str | None = None):
    """
    Configure the root logger: one console handler on stderr, colored when
    stderr is a terminal, plus an optional log file.

    Calling it again only updates the levels, handlers are added once.

    Args:
        debug: Log DEBUG instead of INFO
        module_levels: Per-module levels, e.g. {"track": "DEBUG"}; falls back to $CTXB_LOG_LEVELS
        log_file: Also write the log to this file
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    if not root.handlers:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(_console_formatter(sys.stderr))
        root.addHandler(console)

        if log_file:
            try:
                file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
            except OSError as e:
                logging.error(f"Failed to create log file handler for '{log_file}': {e}")
            else:
                file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
                root.addHandler(file_handler)
                logging.info(f"Logging to file: {log_file}")

    _apply_module_levels(module_levels)


def parse_module_levels(text: str | None) -> dict | None:
    """'track=DEBUG,io=INFO' -> {'track': 'DEBUG', 'io': 'INFO'}; pairs without '=' are skipped"""
    if not text:
        return None
    levels = {}
    for pair in text.split(','):
        name, sep, lvl = pair.partition('=')
        if sep and name.strip():
            levels[name.strip()] = lvl.strip().upper()
    return levels


def _apply_module_levels(module_levels: dict | None):
    if module_levels is None:
        module_levels = parse_module_levels(os.environ.get(constants.LOG_LEVELS_ENV))

    for name, lvl_str in (module_levels or {}).items():
        lvl = logging.getLevelName(lvl_str.upper())
        if not isinstance(lvl, int):
            logging.warning(f"Ignoring unknown log level '{lvl_str}' for '{name}'")
            continue
        logging.getLogger(_normalize_module_name(name)).setLevel(lvl)


def _normalize_module_name(name: str) -> str:
    """
    Map a user supplied module name to a logger name.

    Aliases from `LOG_ALIAS_MAP` expand to their module, a trailing '.*' is
    dropped and names starting with a known top module get the
    'ctxbuilder.' prefix. Anything else is used as given.
    """
    if name in constants.LOG_ALIAS_MAP:
        return constants.LOG_ALIAS_MAP[name]
    name = name.removesuffix('.*')
    if name.split('.', 1)[0] in constants.KNOWN_TOP_MODULES:
        return f'ctxbuilder.{name}'
    return name
