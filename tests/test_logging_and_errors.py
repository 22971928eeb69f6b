from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest

import version
from binding_agent import logging_utils
from binding_agent.errors import AuthenticationError, ConfigFormatError, SessionConnectionError, format_error_chain


@pytest.fixture()
def agent_logger():
    logger = logging.getLogger(logging_utils.ROOT_LOGGER_NAME)
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    handlers, level, propagate = saved
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_error_chain_lists_every_cause():
    try:
        try:
            raise ConnectionRefusedError("connection refused")
        except OSError as inner:
            raise SessionConnectionError("unable to get summoner region") from inner
    except SessionConnectionError as middle:
        outer = AuthenticationError("unable to get summoner region, check if you're logged in")
        outer.__cause__ = middle

    assert format_error_chain(outer).splitlines() == [
        "error: unable to get summoner region, check if you're logged in",
        "caused by: unable to get summoner region",
        "caused by: connection refused",
    ]


def test_error_chain_single_error():
    assert format_error_chain(ConfigFormatError("bad groups")) == "error: bad groups"


def test_config_format_error_is_a_value_error():
    assert issubclass(ConfigFormatError, ValueError)


def test_rotating_handler_keeps_retention_files(tmp_path):
    handler = logging_utils.build_rotating_file_handler(
        tmp_path / "logs",
        "agent.log",
        retention=3,
        max_bytes=1024,
        formatter=logging_utils.build_formatter(),
    )
    try:
        assert isinstance(handler, RotatingFileHandler)
        assert handler.backupCount == 2
        assert handler.maxBytes == 1024
    finally:
        handler.close()


def test_configure_agent_logging_writes_utc_lines(tmp_path, agent_logger):
    logger = logging_utils.configure_agent_logging(level=logging.DEBUG, logs_dir=tmp_path, console=False)
    logging.getLogger("DarkBinding.ConfigStore").debug("restored %s", "aram")
    for handler in logger.handlers:
        handler.flush()

    text = (tmp_path / logging_utils.LOG_FILE_NAME).read_text(encoding="utf-8")
    assert " UTC - DEBUG - DarkBinding.ConfigStore - restored aram" in text


def test_reconfiguring_replaces_handlers(tmp_path, agent_logger):
    logging_utils.configure_agent_logging(level=logging.INFO, logs_dir=tmp_path, console=True)
    logger = logging_utils.configure_agent_logging(level=logging.INFO, logs_dir=None, console=True)
    assert len(logger.handlers) == 1


def test_log_level_env_override(monkeypatch):
    monkeypatch.delenv(logging_utils.LOG_LEVEL_ENV_VAR, raising=False)
    assert logging_utils.resolve_log_level(False) == logging.INFO
    assert logging_utils.resolve_log_level(True) == logging.DEBUG
    monkeypatch.setenv(logging_utils.LOG_LEVEL_ENV_VAR, "warning")
    assert logging_utils.resolve_log_level(True) == logging.WARNING
    monkeypatch.setenv(logging_utils.LOG_LEVEL_ENV_VAR, "chatty")
    assert logging_utils.resolve_log_level(False) == logging.INFO


@pytest.mark.parametrize(
    "identifier, expected",
    [("0.3.0-dev", True), ("1.0.0.dev2", True), ("1.0.0", False), ("2.1-rc1", False)],
)
def test_dev_build_detection(monkeypatch, identifier, expected):
    monkeypatch.delenv(version.DEV_MODE_ENV_VAR, raising=False)
    assert version.is_dev_build(identifier) is expected


def test_shipped_version_logs_at_info_by_default(monkeypatch):
    monkeypatch.delenv(version.DEV_MODE_ENV_VAR, raising=False)
    monkeypatch.delenv(logging_utils.LOG_LEVEL_ENV_VAR, raising=False)
    assert version.is_dev_build() is False
    assert logging_utils.resolve_log_level(version.is_dev_build()) == logging.INFO


def test_dev_mode_env_wins(monkeypatch):
    monkeypatch.setenv(version.DEV_MODE_ENV_VAR, "0")
    assert version.is_dev_build("0.3.0-dev") is False
    monkeypatch.setenv(version.DEV_MODE_ENV_VAR, "yes")
    assert version.is_dev_build("1.0.0") is True
