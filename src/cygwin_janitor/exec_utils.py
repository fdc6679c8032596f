"""!
@brief Subprocess execution helpers with sanitised environments.
@details Centralises invocation of :func:`subprocess.run` so every system
utility the scrubbers rely on (``sc.exe``, ``taskkill.exe``, ``takeown.exe``,
``icacls.exe``, ``reg.exe`` and PowerShell CIM queries) inherits consistent
logging, dry-run behaviour, and environment handling. It is also the single
seam tests replace to exercise scrubber policy without touching the host.
"""

from __future__ import annotations

import json
import os
import subprocess
import time
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any

from . import logging_ext

_SANITIZE_BLOCKLIST = {
    "PYTHONPATH",
    "PYTHONHOME",
    "PYTHONWARNINGS",
    "VIRTUAL_ENV",
    "CONDA_PREFIX",
    "CONDA_DEFAULT_ENV",
    "__PYVENV_LAUNCHER__",
}

MISSING_EXECUTABLE_RC = 127


@dataclass
class CommandResult:
    """!
    @brief Outcome information from :func:`run_command`.
    """

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float
    skipped: bool = False
    timed_out: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.error and not self.timed_out

    def describe(self) -> str:
        """!
        @brief Short human-readable failure description for warnings.
        """

        if self.timed_out:
            return "timed out"
        if self.error:
            return self.error
        detail = (self.stderr or self.stdout or "").strip()
        if detail:
            return f"exit code {self.returncode}: {detail.splitlines()[0]}"
        return f"exit code {self.returncode}"


_GLOBAL_TIMEOUT: float | None = None


def set_global_timeout(timeout_seconds: float | int | None) -> None:
    """!
    @brief Apply a global timeout cap for all subprocess calls.
    @details :func:`run_command` uses the minimum of the caller supplied timeout
    and this limit so the CLI ``--timeout`` flag bounds every step.
    """

    global _GLOBAL_TIMEOUT
    if timeout_seconds is None:
        _GLOBAL_TIMEOUT = None
        return
    try:
        parsed = float(timeout_seconds)
    except (TypeError, ValueError):
        _GLOBAL_TIMEOUT = None
    else:
        _GLOBAL_TIMEOUT = parsed if parsed > 0 else None


def _resolve_timeout(requested: float | int | None) -> float | int | None:
    if _GLOBAL_TIMEOUT is None:
        return requested
    if requested is None:
        return _GLOBAL_TIMEOUT
    return min(_GLOBAL_TIMEOUT, requested)


def sanitize_environment(
    *,
    base_env: Mapping[str, str] | None = None,
    extra: Mapping[str, str] | None = None,
    remove: Iterable[str] | None = None,
) -> MutableMapping[str, str]:
    """!
    @brief Produce a subprocess environment stripped of virtualenv artefacts.
    @param base_env Source mapping; defaults to :data:`os.environ`.
    @param extra Overrides applied after sanitisation.
    @param remove Additional variable names to drop.
    """

    source = base_env if base_env is not None else os.environ
    environment: MutableMapping[str, str] = {
        str(k): str(v) for k, v in source.items() if v is not None
    }

    for key in _SANITIZE_BLOCKLIST:
        environment.pop(key, None)
    for key in remove or ():
        environment.pop(key, None)
    for key, value in (extra or {}).items():
        environment[str(key)] = str(value)

    return environment


def _call_payload(
    command_list: Sequence[str],
    timeout: float | int | None,
    extra: Mapping[str, object] | None,
) -> dict[str, object]:
    payload: dict[str, object] = {"command": list(command_list), "timeout": timeout}
    for key, value in (extra or {}).items():
        if key not in {"event", "result"}:
            payload[key] = value
    return payload


def _result_payload(result: CommandResult) -> dict[str, object]:
    return {
        "rc": result.returncode,
        "duration_ms": round(result.duration * 1000, 3),
        "stdout": result.stdout,
        "stderr": result.stderr,
        "error": result.error,
        "timed_out": result.timed_out,
    }


def run_command(
    command: Sequence[str] | str,
    *,
    event: str,
    timeout: int | float | None = None,
    dry_run: bool = False,
    human_message: str | None = None,
    extra: Mapping[str, object] | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """!
    @brief Execute ``command`` with consistent logging and environment hygiene.
    @details Emits ``<event>_plan`` and ``<event>_result`` machine-log events
    (``_missing``, ``_timeout`` or ``_error`` on failure) and supports dry-run
    mode, which echoes the intended command without executing it. A missing
    executable is reported as return code ``127`` rather than raised.
    @param command Sequence of command arguments.
    @param event Base name for structured log events.
    @param timeout Optional timeout in seconds.
    @param dry_run When ``True`` no subprocess is spawned and the result is
    marked ``skipped``.
    @param human_message Optional message emitted to the human logger.
    @param extra Additional metadata merged into machine log payloads.
    @param env Environment mapping to start from prior to sanitisation.
    @returns :class:`CommandResult` describing the observed outcome.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()

    command_list = [command] if isinstance(command, str) else [str(part) for part in command]
    effective_timeout: Any = _resolve_timeout(timeout)
    call = _call_payload(command_list, effective_timeout, extra)

    machine_logger.info(
        f"{event}_plan",
        extra={"event": f"{event}_plan", "call": call, "dry_run": dry_run},
    )

    if dry_run:
        if human_message:
            human_logger.info("%s [dry-run]", human_message)
        else:
            human_logger.info("Dry-run: would execute %s", " ".join(command_list))
        return CommandResult(
            command=command_list,
            returncode=0,
            stdout="",
            stderr="",
            duration=0.0,
            skipped=True,
        )

    if human_message:
        human_logger.info(human_message)

    start = time.monotonic()
    try:
        completed = subprocess.run(  # noqa: S603 - intentional command execution
            command_list,
            capture_output=True,
            text=True,
            timeout=effective_timeout,
            check=False,
            env=sanitize_environment(base_env=env),
        )
    except FileNotFoundError as exc:
        result = CommandResult(
            command=command_list,
            returncode=MISSING_EXECUTABLE_RC,
            stdout="",
            stderr="",
            duration=time.monotonic() - start,
            error=str(exc),
        )
        human_logger.debug("Command not found: %s", command_list[0])
        suffix = "missing"
    except subprocess.TimeoutExpired as exc:
        result = CommandResult(
            command=command_list,
            returncode=1,
            stdout=str(exc.stdout or ""),
            stderr=str(exc.stderr or ""),
            duration=time.monotonic() - start,
            timed_out=True,
            error="timeout",
        )
        human_logger.debug("Command timed out after %.1fs: %s", result.duration, command_list[0])
        suffix = "timeout"
    except OSError as exc:
        result = CommandResult(
            command=command_list,
            returncode=1,
            stdout="",
            stderr="",
            duration=time.monotonic() - start,
            error=str(exc),
        )
        human_logger.debug("Failed to execute %s: %s", command_list[0], exc)
        suffix = "error"
    else:
        result = CommandResult(
            command=command_list,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=time.monotonic() - start,
        )
        suffix = "result"

    log = machine_logger.info if suffix == "result" else machine_logger.error
    log(
        f"{event}_{suffix}",
        extra={"event": f"{event}_{suffix}", "call": call, "result": _result_payload(result)},
    )
    return result


def run_powershell_json(
    script: str,
    *,
    event: str,
    timeout: int | float | None = 120,
) -> list[dict[str, Any]]:
    """!
    @brief Run a PowerShell pipeline ending in ``ConvertTo-Json`` and decode it.
    @details PowerShell serialises a single object without the enclosing array,
    so the result is always normalised to a list of dictionaries. Queries are
    read-only and therefore never dry-run.
    @raises RuntimeError When PowerShell is unavailable, fails, or emits
    something that is not JSON.
    """

    result = run_command(
        ["powershell.exe", "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command", script],
        event=event,
        timeout=timeout,
    )
    if not result.ok:
        raise RuntimeError(f"PowerShell query failed ({result.describe()})")

    text = result.stdout.strip()
    if not text:
        return []
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"PowerShell query returned invalid JSON: {exc}") from exc

    if isinstance(decoded, dict):
        return [decoded]
    if isinstance(decoded, list):
        return [item for item in decoded if isinstance(item, dict)]
    return []


__all__ = [
    "CommandResult",
    "MISSING_EXECUTABLE_RC",
    "run_command",
    "run_powershell_json",
    "sanitize_environment",
    "set_global_timeout",
]
