"""
Logging helpers.

The engine only writes through module loggers (or a logger injected into
Parametrization / Neighbourhood). The CLI calls `setup_logging()` once, which
attaches a UTF-8 file handler at a stable per-user location and, on request,
an stderr handler, so failed runs always leave a traceback behind.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Iterable, Optional

ENV_LOG_LEVEL = "MESHPARAM_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_LOG_ONCE_KEYS: set[str] = set()
_LOG_ONCE_LOCK = threading.Lock()


def default_log_dir() -> Path:
    """Per-user log directory (LOCALAPPDATA on Windows, XDG state dir elsewhere)."""
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / "meshparam" / "logs"

    state_home = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    return Path(state_home) / "meshparam" / "logs"


def parse_log_level(level: str | int | None) -> int:
    """'debug' / 'INFO' / 10 -> logging level; unknown names fall back to INFO."""
    if isinstance(level, int):
        return int(level)
    name = str(level or "").strip().upper()
    value = getattr(logging, name, None) if name else None
    return int(value) if isinstance(value, int) else logging.INFO


def _attached_log_file(root: logging.Logger) -> Optional[Path]:
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def setup_logging(
    *,
    log_level: str | int = "INFO",
    log_dir: Optional[str | Path] = None,
    filename: str = "meshparam.log",
    console: bool = False,
) -> Optional[Path]:
    """
    Configure root logging for a CLI run.

    Idempotent: if a FileHandler is already attached its path is returned and
    nothing else changes. `MESHPARAM_LOG_LEVEL` overrides `log_level`.

    Returns:
        Path of the log file, or None if the directory is not writable.
    """
    root = logging.getLogger()
    attached = _attached_log_file(root)
    if attached is not None:
        return attached

    level = parse_log_level(os.environ.get(ENV_LOG_LEVEL) or log_level)
    root.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(level)
        stream.setFormatter(formatter)
        root.addHandler(stream)

    log_path = (Path(log_dir) if log_dir is not None else default_log_dir()) / filename
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
    except OSError:
        root.warning("Cannot write log file %s; logging to file is disabled", log_path)
        return None

    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    root.info("Logging initialized: %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def format_exception_message(prefix: str, message: str, *, log_path: Optional[Path]) -> str:
    if log_path is None:
        return f"{prefix}\n\n{message}"
    return f"{prefix}\n\n{message}\n\n(log file: {log_path})"


def log_once(
    logger: logging.Logger,
    key: str,
    level: int,
    msg: str,
    *args,
    exc_info: bool | BaseException | None = None,
) -> bool:
    """
    Logs at most once per process for the given key.

    Used for per-triangle and per-mesh warnings (dropped seam triangles,
    unused vertices) that would otherwise repeat for every affected element.
    Returns True if the message was emitted.
    """
    k = str(key)
    with _LOG_ONCE_LOCK:
        if k in _LOG_ONCE_KEYS:
            return False
        _LOG_ONCE_KEYS.add(k)

    logger.log(level, msg, *args, exc_info=exc_info)
    return True


def reset_log_once(keys: Optional[Iterable[str]] = None) -> None:
    """Forget emitted `log_once` keys (all of them if `keys` is None)."""
    with _LOG_ONCE_LOCK:
        if keys is None:
            _LOG_ONCE_KEYS.clear()
        else:
            _LOG_ONCE_KEYS.difference_update(str(k) for k in keys)
