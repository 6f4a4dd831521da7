from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from magnifier_client import config, logging_utils
from magnifier_client.logging_utils import (
    LOGGER_NAME,
    OnceLogger,
    build_rotating_file_handler,
    configure_client_logging,
    get_client_logger,
    resolve_log_level,
    resolve_logs_dir,
)


def test_resolve_logs_dir_prefers_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv(logging_utils.LOG_DIR_ENV_VAR, str(tmp_path / "custom"))
    target = resolve_logs_dir("PageMagnifier")
    assert target == tmp_path / "custom" / "PageMagnifier"
    assert target.is_dir()


def test_rotating_handler_uses_retention(tmp_path):
    handler = build_rotating_file_handler(tmp_path / "logs", "magnifier.log", retention=3, max_bytes=1024)
    try:
        assert isinstance(handler, RotatingFileHandler)
        assert handler.backupCount == 2
        assert handler.maxBytes == 1024
        assert (tmp_path / "logs").is_dir()
    finally:
        handler.close()


def test_configure_client_logging_sets_level_and_writes(tmp_path):
    logger = logging.getLogger("PageMagnifier.Client.test")
    logger.propagate = False
    handler = configure_client_logging(logger, debug_enabled=True, log_dir=tmp_path)
    try:
        assert logger.level == logging.DEBUG
        logger.debug("hello %s", "magnifier")
        handler.flush()
        assert "hello magnifier" in (tmp_path / "magnifier.log").read_text(encoding="utf-8")
    finally:
        logger.removeHandler(handler)
        handler.close()


def test_client_logger_propagation_is_opt_in(monkeypatch):
    logger = logging.getLogger(LOGGER_NAME)
    monkeypatch.setattr(logger, "propagate", logger.propagate)
    monkeypatch.delenv(logging_utils.PROPAGATE_ENV_VAR, raising=False)
    assert get_client_logger().propagate is False
    monkeypatch.setenv(logging_utils.PROPAGATE_ENV_VAR, "1")
    assert get_client_logger().propagate is True


class _Recorder:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def warning(self, message: str, *args: object) -> None:
        self.messages.append(message % args)


def test_once_logger_reports_until_cleared():
    recorder = _Recorder()
    once = OnceLogger(recorder)  # type: ignore[arg-type]

    once.warning("page", "draw failed: %s", "a")
    once.warning("page", "draw failed: %s", "b")
    once.warning("region", "region failed")
    assert recorder.messages == ["draw failed: a", "region failed"]
    assert once.is_reported("page")

    once.clear("page")
    once.warning("page", "draw failed: %s", "c")
    assert recorder.messages[-1] == "draw failed: c"


def test_dev_mode_raises_level_to_debug():
    assert resolve_log_level(False) == logging.INFO
    assert resolve_log_level(True) == logging.DEBUG
    assert resolve_log_level(False, dev_mode=True) == logging.DEBUG


def test_rotating_handler_defaults_to_magnifier_log(tmp_path):
    handler = build_rotating_file_handler(tmp_path, retention=1)
    try:
        assert handler.baseFilename == str(tmp_path / "magnifier.log")
        assert handler.backupCount == 0
        assert handler.maxBytes == logging_utils.LOG_MAX_BYTES
    finally:
        handler.close()


def test_configure_client_logging_honours_dev_mode_env(tmp_path, monkeypatch):
    monkeypatch.setenv(config.DEV_MODE_ENV_VAR, "1")
    logger = logging.getLogger("PageMagnifier.Client.devmode")
    logger.propagate = False
    handler = configure_client_logging(logger, debug_enabled=False, log_dir=tmp_path)
    try:
        assert logger.level == logging.DEBUG
    finally:
        logger.removeHandler(handler)
        handler.close()
