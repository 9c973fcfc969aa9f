"""Logging setup for highlightcut.

Call ``setup_logging()`` once from an entry point (the CLI does). Modules log
through ``logging.getLogger("highlightcut.<area>")`` and prefix messages with
a bracketed stage tag, e.g. ``[semantic]`` or ``[cut]``.

Environment:
    HC_LOG_LEVEL          default level when ``level`` is not passed
    HC_LOG_FILE           optional log file path
    HC_LOG_MODULE_LEVELS  per-logger overrides, "ai=DEBUG,selection=INFO"
"""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, Optional, Union

ROOT_LOGGER = "highlightcut"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

_configured = False


def _qualify(name: str) -> str:
    name = name.strip()
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return name
    return f"{ROOT_LOGGER}.{name}"


def _level_from_name(value: str) -> Optional[int]:
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else None


def _parse_module_levels(spec: str) -> Dict[str, int]:
    """Parse ``"ai=DEBUG; highlightcut.cut:warning"`` into logger levels.

    Entries are separated by ``,`` or ``;`` and assigned with ``=`` or ``:``.
    Bare names are placed under ``highlightcut``. Malformed entries and
    unknown level names are skipped.
    """
    levels: Dict[str, int] = {}
    for entry in re.split(r"[;,]", spec or ""):
        m = re.match(r"^\s*([\w.]+)\s*[=:]\s*(\w+)\s*$", entry)
        if not m:
            continue
        level = _level_from_name(m.group(2))
        if level is not None:
            levels[_qualify(m.group(1))] = level
    return levels


def _handler(handler: logging.Handler, fmt: str) -> logging.Handler:
    # Handlers stay at DEBUG so module overrides are not filtered out again.
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[int] = None,
    log_file: Optional[Union[str, Path]] = None,
    format_string: Optional[str] = None,
    *,
    force: bool = False,
) -> logging.Logger:
    """Attach console (and optional file) handlers to the ``highlightcut`` logger.

    Repeated calls are no-ops unless ``force`` is set. Returns the package
    logger.
    """
    global _configured
    logger = logging.getLogger(ROOT_LOGGER)
    if _configured and not force:
        return logger

    if level is None:
        level = _level_from_name(os.getenv("HC_LOG_LEVEL", "INFO")) or logging.INFO
    fmt = format_string or DEFAULT_FORMAT

    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(level)
    logger.addHandler(_handler(logging.StreamHandler(sys.stderr), fmt))

    path = log_file or os.getenv("HC_LOG_FILE") or None
    if path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_handler(logging.FileHandler(path, encoding="utf-8"), fmt))

    logger.propagate = False

    for name, lvl in _parse_module_levels(os.getenv("HC_LOG_MODULE_LEVELS", "")).items():
        logging.getLogger(name).setLevel(lvl)

    _configured = True
    logger.debug("[logging] level=%s file=%s", logging.getLevelName(level), path or "-")
    return logger
