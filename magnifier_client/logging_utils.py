from __future__ import annotations

import logging
import os
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from magnifier_client.config import is_dev_mode

LOGGER_NAME = "PageMagnifier.Client"
PROPAGATE_ENV_VAR = "MAGNIFIER_PROPAGATE_LOGS"
LOG_DIR_ENV_VAR = "MAGNIFIER_LOG_DIR"
LOG_FILENAME = "magnifier.log"
LOG_MAX_BYTES = 512 * 1024


def get_client_logger() -> logging.Logger:
    """Return the shared client logger, honouring the propagation opt-in."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = os.environ.get(PROPAGATE_ENV_VAR, "").lower() in {"1", "true", "yes", "on"}
    return logger


def resolve_logs_dir(log_dir_name: str = "PageMagnifier") -> Path:
    """
    Resolve the directory to store magnifier logs.

    Strategy:
    - Use MAGNIFIER_LOG_DIR if set.
    - Fall back to XDG state/cache locations, then `cwd/logs/<log_dir_name>`.
    - Final fallback: tempdir/<log_dir_name>.
    """
    candidates = []

    env_override = os.environ.get(LOG_DIR_ENV_VAR)
    if env_override:
        try:
            candidates.append(Path(env_override).expanduser())
        except Exception:
            pass

    state_home = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
    cache_home = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))
    candidates.append(state_home / "logs")
    candidates.append(cache_home / "logs")
    candidates.append(Path.cwd() / "logs")

    for base in candidates:
        try:
            target = base / log_dir_name
            target.mkdir(parents=True, exist_ok=True)
            return target
        except Exception:
            continue

    temp_fallback = Path(tempfile.gettempdir()) / log_dir_name
    temp_fallback.mkdir(parents=True, exist_ok=True)
    return temp_fallback


def build_rotating_file_handler(
    log_dir: Path,
    filename: str = LOG_FILENAME,
    *,
    retention: int = 5,
    max_bytes: int = LOG_MAX_BYTES,
    formatter: Optional[logging.Formatter] = None,
) -> logging.Handler:
    """Open the magnifier log under ``log_dir``; ``retention`` counts the live file plus rotated copies."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / filename,
        maxBytes=max(1, max_bytes),
        backupCount=max(1, retention) - 1,
        encoding="utf-8",
    )
    if formatter is not None:
        handler.setFormatter(formatter)
    return handler


def resolve_log_level(debug_enabled: bool, *, dev_mode: bool = False) -> int:
    """DEBUG when the --debug flag or MAGNIFIER_DEV_MODE asks for it, INFO otherwise."""
    return logging.DEBUG if debug_enabled or dev_mode else logging.INFO


class OnceLogger:
    """Emit a warning once per failure key until that key is cleared by a success."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._reported: set[str] = set()

    def warning(self, key: str, message: str, *args: object) -> None:
        if key in self._reported:
            return
        self._reported.add(key)
        self._logger.warning(message, *args)

    def clear(self, key: str) -> None:
        self._reported.discard(key)

    def is_reported(self, key: str) -> bool:
        return key in self._reported


def configure_client_logging(
    logger: logging.Logger,
    *,
    debug_enabled: bool,
    retention: int = 5,
    log_dir: Optional[Path] = None,
    filename: str = LOG_FILENAME,
) -> logging.Handler:
    """Attach a rotating file handler (or a stream handler if files are unavailable)."""
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S")
    logger.setLevel(resolve_log_level(debug_enabled, dev_mode=is_dev_mode()))
    try:
        handler = build_rotating_file_handler(
            log_dir if log_dir is not None else resolve_logs_dir(),
            filename,
            retention=retention,
            formatter=formatter,
        )
    except Exception as exc:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.warning("Failed to initialise file logging: %s", exc)
        return handler
    logger.addHandler(handler)
    return handler
