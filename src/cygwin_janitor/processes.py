"""!
@brief Process termination helpers.
@details Two independent passes stop product processes before their files are
deleted. The first kills every process carrying one of the known image names
with ``taskkill /IM`` and needs no path information. The second enumerates all
processes through CIM and kills each one whose executable path carries the
product signature. A process hit by both passes is simply reported as already
exited the second time.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from . import constants, exec_utils, logging_ext, safety
from .report import RunReport

SCRUBBER = "processes"

PROCESS_QUERY = (
    "Get-CimInstance -ClassName Win32_Process | "
    "Select-Object Name,ProcessId,ExecutablePath | "
    "ConvertTo-Json -Compress"
)

# taskkill.exe exits with 128 when no matching process exists.
_NOT_FOUND_RC = 128


@dataclass(frozen=True)
class ProcessRecord:
    name: str
    pid: int
    path: Optional[str] = None


def list_processes() -> List[ProcessRecord]:
    """!
    @brief Enumerate running processes with their executable paths.
    @details ``path`` is ``None`` when Windows does not expose it (protected
    or already-exiting processes).
    @raises RuntimeError When the CIM query fails.
    """

    records: List[ProcessRecord] = []
    for entry in exec_utils.run_powershell_json(PROCESS_QUERY, event="process_enumerate"):
        try:
            pid = int(entry.get("ProcessId"))
        except (TypeError, ValueError):
            continue
        path = entry.get("ExecutablePath")
        records.append(
            ProcessRecord(
                name=str(entry.get("Name") or ""),
                pid=pid,
                path=str(path) if path else None,
            )
        )
    return records


def terminate_by_name(image_name: str, *, dry_run: bool = False, timeout: int = 30) -> exec_utils.CommandResult:
    return exec_utils.run_command(
        ["taskkill.exe", "/F", "/IM", image_name],
        event="process_terminate_name",
        timeout=timeout,
        dry_run=dry_run,
        extra={"process_name": image_name},
    )


def terminate_pid(pid: int, *, dry_run: bool = False, timeout: int = 30) -> exec_utils.CommandResult:
    return exec_utils.run_command(
        ["taskkill.exe", "/F", "/PID", str(pid)],
        event="process_terminate_pid",
        timeout=timeout,
        dry_run=dry_run,
        extra={"pid": pid},
    )


def _record_kill(
    report: RunReport,
    action: str,
    target: str,
    result: exec_utils.CommandResult,
    *,
    gone_detail: str,
) -> None:
    human_logger = logging_ext.get_human_logger()
    if result.skipped:
        report.simulated(SCRUBBER, action, target)
    elif result.ok:
        human_logger.info("Terminated %s", target)
        report.done(SCRUBBER, action, target)
    elif result.returncode == _NOT_FOUND_RC:
        human_logger.debug("%s: %s", target, gone_detail)
        report.skipped(SCRUBBER, action, target, gone_detail)
    else:
        human_logger.warning("Failed to terminate %s: %s", target, result.describe())
        report.failed(SCRUBBER, action, target, result.describe())


def kill_known_names(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> None:
    for image_name in signature.known_processes:
        try:
            result = terminate_by_name(image_name, dry_run=dry_run)
        except Exception as exc:  # noqa: BLE001 - per-name failure is non-fatal
            report.failed(SCRUBBER, "kill-name", image_name, str(exc))
            continue
        _record_kill(report, "kill-name", image_name, result, gone_detail="not running")


def kill_signature_paths(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> None:
    human_logger = logging_ext.get_human_logger()

    try:
        running = list_processes()
    except Exception as exc:  # noqa: BLE001 - enumeration failure is non-fatal
        human_logger.warning("Could not enumerate processes: %s", exc)
        report.failed(SCRUBBER, "enumerate", "processes", str(exc))
        return

    own_pid = os.getpid()
    matches = [
        record
        for record in running
        if record.path and record.pid != own_pid and safety.contains_signature(record.path, signature)
    ]
    if not matches:
        human_logger.info("No running processes from %s paths.", signature.display_name)
        return

    for record in matches:
        target = f"{record.name} (pid {record.pid})"
        human_logger.info("Found process %s at %s", target, record.path)
        try:
            result = terminate_pid(record.pid, dry_run=dry_run)
        except Exception as exc:  # noqa: BLE001 - per-process failure is non-fatal
            report.failed(SCRUBBER, "kill-pid", target, str(exc))
            continue
        _record_kill(report, "kill-pid", target, result, gone_detail="already exited")


def scrub_processes(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> None:
    """!
    @brief Run the known-name pass, then the signature-path pass.
    """

    kill_known_names(signature, report, dry_run=dry_run)
    kill_signature_paths(signature, report, dry_run=dry_run)


__all__ = [
    "ProcessRecord",
    "kill_known_names",
    "kill_signature_paths",
    "list_processes",
    "scrub_processes",
    "terminate_by_name",
    "terminate_pid",
]
