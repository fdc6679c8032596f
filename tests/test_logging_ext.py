"""!
@brief Tests for :mod:`cygwin_janitor.logging_ext`.
"""
from __future__ import annotations

import io
import json
import logging
import pathlib
import sys
from contextlib import redirect_stdout

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cygwin_janitor import logging_ext  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_logging_state() -> None:
    """!
    @brief Reset logging between tests to avoid handler leakage.
    """

    yield
    for name in (logging_ext.HUMAN_LOGGER_NAME, logging_ext.MACHINE_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for flt in list(logger.filters):
            logger.removeFilter(flt)
        logger.propagate = True


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def _read_events(path: pathlib.Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_setup_logging_creates_files_and_formats(tmp_path) -> None:
    """!
    @brief Ensure setup creates log files and applies expected formatting.
    """

    logdir = tmp_path / "logs"
    human_logger, machine_logger = logging_ext.setup_logging(logdir)
    human_logger.info("hello world")
    machine_logger.info("service_delete", extra={"event": "service_delete", "service": "cygsshd"})
    _flush(human_logger)
    _flush(machine_logger)

    human_text = (logdir / logging_ext.HUMAN_LOG_FILENAME).read_text(encoding="utf-8")
    assert "hello world" in human_text
    assert "[human]" in human_text

    entries = _read_events(logdir / logging_ext.MACHINE_LOG_FILENAME)
    assert entries[0]["event"] == "run_start"
    assert entries[0]["run"]["run_id"]
    assert entries[-1]["event"] == "service_delete"
    assert entries[-1]["service"] == "cygsshd"
    assert entries[-1]["channel"] == "machine"

    metadata = logging_ext.get_run_metadata()
    assert metadata is not None
    assert metadata["run_id"] == entries[0]["run"]["run_id"]
    assert metadata["logdir"] == str(logdir)
    assert metadata["python"] and metadata["version"]
    assert logging_ext.get_log_directory() == logdir


def test_json_stdout_mirror(tmp_path) -> None:
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        _, machine_logger = logging_ext.setup_logging(tmp_path, json_to_stdout=True)
        machine_logger.warning("mirror", extra={"event": "mirror"})
        _flush(machine_logger)

    output_lines = [line for line in buffer.getvalue().splitlines() if line.strip()]
    assert json.loads(output_lines[0])["event"] == "run_start"
    assert json.loads(output_lines[-1])["event"] == "mirror"


def test_unserialisable_extras_are_coerced(tmp_path) -> None:
    _, machine_logger = logging_ext.setup_logging(tmp_path)
    machine_logger.info("odd", extra={"event": "odd", "path": pathlib.PurePosixPath("/opt/cygwin")})
    _flush(machine_logger)

    entry = _read_events(tmp_path / logging_ext.MACHINE_LOG_FILENAME)[-1]
    assert "/opt/cygwin" in entry["path"]


def test_quiet_console_only_shows_errors(tmp_path) -> None:
    human_logger, _ = logging_ext.setup_logging(tmp_path, quiet=True)

    console = [
        handler
        for handler in human_logger.handlers
        if type(handler) is logging.StreamHandler and handler.stream is sys.stderr
    ]
    assert len(console) == 1
    assert console[0].level == logging.ERROR


def test_logger_helpers_return_configured_instances(tmp_path) -> None:
    human_logger, machine_logger = logging_ext.setup_logging(tmp_path)
    assert logging_ext.get_human_logger() is human_logger
    assert logging_ext.get_machine_logger() is machine_logger
    assert not human_logger.propagate


def test_console_only_setup_writes_no_files(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    human_logger, machine_logger = logging_ext.setup_logging(None)

    assert logging_ext.get_log_directory() is None
    assert not any(isinstance(handler, logging.FileHandler) for handler in human_logger.handlers)
    assert [type(handler) for handler in machine_logger.handlers] == [logging.NullHandler]
    assert logging_ext.get_run_metadata()["logdir"] is None
    assert list(tmp_path.iterdir()) == []


def test_uncreatable_directory_raises_and_leaves_loggers_alone(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(OSError):
        logging_ext.setup_logging(blocker / "logs")

    assert logging.getLogger(logging_ext.HUMAN_LOGGER_NAME).handlers == []
    assert logging.getLogger(logging_ext.MACHINE_LOGGER_NAME).handlers == []
