"""!
@brief Structured logging helpers for Cygwin Janitor.
@details Implements a dual-stream pipeline: a human-readable channel written to
a rotating text file and mirrored to the console, and a JSONL telemetry channel
written to a rotating file (optionally mirrored to stdout). Startup metadata
sourced from :mod:`cygwin_janitor.version` is recorded so log bundles from
repeated runs can be told apart.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import sys
import uuid
from logging import handlers
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Tuple

from . import version

HUMAN_LOGGER_NAME = "cygwin_janitor.human"
"""!
@brief Logger name for human-readable output.
"""

MACHINE_LOGGER_NAME = "cygwin_janitor.machine"
"""!
@brief Logger name for JSONL telemetry output.
"""

HUMAN_LOG_FILENAME = "cygwin-janitor.log"
MACHINE_LOG_FILENAME = "cygwin-janitor.jsonl"

_STANDARD_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime", "channel"}

_CURRENT_LOG_DIRECTORY: Path | None = None
_RUN_METADATA: Dict[str, object] | None = None


class _ChannelFilter(logging.Filter):
    """!
    @brief Inject a fixed ``channel`` attribute on log records.
    """

    def __init__(self, channel: str) -> None:
        super().__init__()
        self._channel = channel

    def filter(self, record: logging.LogRecord) -> bool:
        record.channel = self._channel
        return True


class _JsonLineFormatter(logging.Formatter):
    """!
    @brief Format ``LogRecord`` instances as single-line JSON objects.
    @details Standard metadata (timestamp, level, logger, message) is merged
    with any custom ``extra`` attributes. Values that are not JSON
    serializable are coerced to their ``repr``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise override
        moment = _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": moment.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", "machine"),
        }
        payload.update(_extract_extras(record))
        try:
            return json.dumps(payload, ensure_ascii=False)
        except TypeError:
            sanitized = {key: _coerce_json(value) for key, value in payload.items()}
            return json.dumps(sanitized, ensure_ascii=False)


def _extract_extras(record: logging.LogRecord) -> Dict[str, object]:
    extras: Dict[str, object] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_RECORD_KEYS:
            continue
        extras[key] = value
    return extras


def _coerce_json(value: object) -> object:
    try:
        json.dumps(value)
    except TypeError:
        return repr(value)
    return value


def _configure_logger(
    logger: logging.Logger,
    handlers_to_add: Iterable[Tuple[logging.Handler, logging.Formatter]],
) -> None:
    """!
    @brief Reset a logger and attach the supplied handlers.
    """

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for flt in list(logger.filters):
        logger.removeFilter(flt)
    for handler, formatter in handlers_to_add:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False


def _rotating_file(path: Path) -> handlers.RotatingFileHandler:
    return handlers.RotatingFileHandler(path, maxBytes=1_048_576, backupCount=5, encoding="utf-8")


def setup_logging(
    root_dir: Path | None,
    *,
    json_to_stdout: bool = False,
    quiet: bool = False,
    level: int = logging.INFO,
) -> Tuple[logging.Logger, logging.Logger]:
    """!
    @brief Set up human and machine loggers.
    @details Returns the human-readable and structured event loggers. The
    directory is created when missing and rotated files are configured for both
    streams. The human channel is also echoed to ``stderr``; with ``quiet`` the
    console only receives errors while the file keeps the full record. With
    ``root_dir`` set to ``None`` only the console streams are configured.
    @raises OSError When ``root_dir`` or its log files cannot be created; the
    loggers are left untouched in that case.
    """

    global _CURRENT_LOG_DIRECTORY

    human_file: logging.Handler | None = None
    machine_file: logging.Handler | None = None
    if root_dir is not None:
        root_dir.mkdir(parents=True, exist_ok=True)
        human_file = _rotating_file(root_dir / HUMAN_LOG_FILENAME)
        try:
            machine_file = _rotating_file(root_dir / MACHINE_LOG_FILENAME)
        except OSError:
            human_file.close()
            raise
    _CURRENT_LOG_DIRECTORY = root_dir

    human_logger = logging.getLogger(HUMAN_LOGGER_NAME)
    machine_logger = logging.getLogger(MACHINE_LOGGER_NAME)
    human_logger.setLevel(level)
    machine_logger.setLevel(level)

    human_formatter = logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(channel)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    machine_formatter = _JsonLineFormatter()

    console = logging.StreamHandler(stream=sys.stderr)
    console.setLevel(logging.ERROR if quiet else level)

    human_handlers: List[Tuple[logging.Handler, logging.Formatter]] = [(console, console_formatter)]
    machine_handlers: List[Tuple[logging.Handler, logging.Formatter]] = []
    if human_file is not None:
        human_handlers.insert(0, (human_file, human_formatter))
    if machine_file is not None:
        machine_handlers.append((machine_file, machine_formatter))
    if json_to_stdout:
        machine_handlers.append((logging.StreamHandler(stream=sys.stdout), machine_formatter))
    if not machine_handlers:
        machine_handlers.append((logging.NullHandler(), machine_formatter))

    _configure_logger(human_logger, human_handlers)
    _configure_logger(machine_logger, machine_handlers)

    human_logger.addFilter(_ChannelFilter("human"))
    machine_logger.addFilter(_ChannelFilter("machine"))

    _emit_run_metadata(human_logger, machine_logger)

    return human_logger, machine_logger


def get_human_logger() -> logging.Logger:
    """!
    @brief Retrieve the configured human-readable logger.
    """

    return logging.getLogger(HUMAN_LOGGER_NAME)


def get_machine_logger() -> logging.Logger:
    """!
    @brief Retrieve the configured machine/JSON logger.
    """

    return logging.getLogger(MACHINE_LOGGER_NAME)


def get_log_directory() -> Path | None:
    return _CURRENT_LOG_DIRECTORY


def get_run_metadata() -> Mapping[str, object] | None:
    """!
    @brief Return the most recent run metadata payload.
    @details The structure contains ``run_id`` (UUID4 hex), ``timestamp`` in
    ISO-8601 UTC form, and version identifiers from :mod:`cygwin_janitor.version`.
    """

    return dict(_RUN_METADATA) if _RUN_METADATA is not None else None


def _emit_run_metadata(human_logger: logging.Logger, machine_logger: logging.Logger) -> None:
    global _RUN_METADATA

    moment = _dt.datetime.now(tz=_dt.timezone.utc)
    _RUN_METADATA = {
        "run_id": uuid.uuid4().hex,
        "timestamp": moment.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        **version.build_info(),
        "logdir": str(_CURRENT_LOG_DIRECTORY) if _CURRENT_LOG_DIRECTORY else None,
    }

    human_logger.info(
        "Cygwin Janitor %s (%s) starting, run %s",
        version.__version__,
        version.__build__,
        _RUN_METADATA["run_id"],
    )
    if _CURRENT_LOG_DIRECTORY is not None:
        human_logger.info("Logs directory: %s", _CURRENT_LOG_DIRECTORY)

    machine_logger.info("run_start", extra={"event": "run_start", "run": dict(_RUN_METADATA)})


__all__ = [
    "HUMAN_LOGGER_NAME",
    "HUMAN_LOG_FILENAME",
    "MACHINE_LOGGER_NAME",
    "MACHINE_LOG_FILENAME",
    "get_human_logger",
    "get_log_directory",
    "get_machine_logger",
    "get_run_metadata",
    "setup_logging",
]
