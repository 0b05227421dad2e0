"""Tests for process-wide logging setup and native log hooks."""

import json
import logging

import pytest

from streamscribe.logging import setup as log_setup


@pytest.fixture
def fresh_logging(monkeypatch):
    """Run each test against an unconfigured root logger."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    monkeypatch.setattr(log_setup, "_logging_configured", False)
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    logging.captureWarnings(False)


def test_setup_writes_log_file(fresh_logging, tmp_path):
    log_setup.setup_logging({"level": "DEBUG", "console_output": False}, log_dir=tmp_path)
    logging.getLogger("streamscribe.test").info("hello file")

    for handler in logging.getLogger().handlers:
        handler.flush()
    content = (tmp_path / "streamscribe.log").read_text()
    assert "hello file" in content


def test_setup_is_idempotent(fresh_logging, tmp_path):
    first = log_setup.setup_logging({"console_output": False}, log_dir=tmp_path)
    handler_count = len(first.handlers)

    second = log_setup.setup_logging({"console_output": True}, log_dir=tmp_path)

    assert second is first
    assert len(second.handlers) == handler_count


def test_file_output_disabled(fresh_logging, tmp_path):
    root = log_setup.setup_logging(
        {"file_output": False, "console_output": True}, log_dir=tmp_path
    )

    assert not (tmp_path / "streamscribe.log").exists()
    assert len(root.handlers) == 1


def test_accepts_full_config_with_logging_section(fresh_logging, tmp_path):
    root = log_setup.setup_logging(
        {"logging": {"level": "WARNING", "console_output": False}}, log_dir=tmp_path
    )

    assert root.level == logging.WARNING


def test_structured_formatter_emits_json():
    record = logging.LogRecord(
        "streamscribe.x", logging.INFO, __file__, 10, "chunk %d", (3,), None
    )
    record.chunk_index = 3

    payload = json.loads(log_setup.StructuredFormatter().format(record))

    assert payload["message"] == "chunk 3"
    assert payload["level"] == "INFO"
    assert payload["chunk_index"] == 3


def test_get_logger_tags_service():
    logger = log_setup.get_logger("pipeline")

    assert logger.name == "streamscribe.pipeline"
    assert log_setup.get_logger("pipeline") is logger
    assert any(isinstance(f, log_setup.ServiceFilter) for f in logger.filters)


def test_install_logging_hooks_is_idempotent():
    log_setup.install_logging_hooks()
    log_setup.install_logging_hooks()

    assert log_setup.hooks_installed()
    assert logging.getLogger("faster_whisper").level == logging.WARNING
