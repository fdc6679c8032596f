"""!
@brief Scrub orchestration.
@details Runs the scrubbers strictly in sequence: services and processes
first so file locks are released, then install roots and package caches, then
environment variables, registry keys and shortcuts. Every step runs inside its
own boundary: an unexpected exception is logged, recorded as a failed step,
and the next step still runs.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence, Tuple

from . import (
    constants,
    environment,
    fs_tools,
    locations,
    logging_ext,
    processes,
    registry_tools,
    services,
    shortcuts,
)
from .report import RunReport


@dataclass(frozen=True)
class ScrubOptions:
    dry_run: bool = False
    backup: Path | None = None


StepFunction = Callable[[constants.ProductSignature, RunReport, ScrubOptions], None]


def _step_services(signature: constants.ProductSignature, report: RunReport, options: ScrubOptions) -> None:
    services.scrub_services(signature, report, dry_run=options.dry_run)


def _step_processes(signature: constants.ProductSignature, report: RunReport, options: ScrubOptions) -> None:
    processes.scrub_processes(signature, report, dry_run=options.dry_run)


def _step_directories(signature: constants.ProductSignature, report: RunReport, options: ScrubOptions) -> None:
    human_logger = logging_ext.get_human_logger()
    found = locations.discover_locations(signature)
    if not found:
        human_logger.info("No %s install roots or caches found.", signature.display_name)
        return
    for root in found.roots:
        fs_tools.scrub_directory(root, signature, report, dry_run=options.dry_run)
    for cache in found.caches:
        fs_tools.scrub_directory(cache, signature, report, dry_run=options.dry_run)


def _step_environment(signature: constants.ProductSignature, report: RunReport, options: ScrubOptions) -> None:
    environment.scrub_environment(signature, report, dry_run=options.dry_run)


def _step_registry(signature: constants.ProductSignature, report: RunReport, options: ScrubOptions) -> None:
    registry_tools.scrub_registry(signature, report, dry_run=options.dry_run, backup=options.backup)


def _step_shortcuts(signature: constants.ProductSignature, report: RunReport, options: ScrubOptions) -> None:
    shortcuts.scrub_shortcuts(signature, report, dry_run=options.dry_run)


SCRUB_STEPS: Tuple[Tuple[str, str, StepFunction], ...] = (
    ("services", "Removing services", _step_services),
    ("processes", "Terminating processes", _step_processes),
    ("directories", "Removing install roots and package caches", _step_directories),
    ("environment", "Cleaning environment variables", _step_environment),
    ("registry", "Removing registry keys", _step_registry),
    ("shortcuts", "Removing shortcuts", _step_shortcuts),
)


def run_scrub(
    signature: constants.ProductSignature = constants.CYGWIN,
    *,
    dry_run: bool = False,
    backup: Path | None = None,
    report: RunReport | None = None,
    steps: Sequence[Tuple[str, str, StepFunction]] = SCRUB_STEPS,
) -> RunReport:
    """!
    @brief Execute every scrub step and return the collected report.
    @param signature Product table describing what to remove.
    @param dry_run Discover and evaluate everything but change nothing.
    @param backup Directory receiving ``.reg`` exports before key deletion.
    @param report Existing report to extend; a new one is created otherwise.
    @param steps Override of the step sequence, mainly for tests.
    """

    human_logger = logging_ext.get_human_logger()
    machine_logger = logging_ext.get_machine_logger()
    report = report if report is not None else RunReport()
    options = ScrubOptions(dry_run=dry_run, backup=backup)

    total = len(steps)
    for index, (name, title, step) in enumerate(steps, start=1):
        human_logger.info("[%d/%d] %s", index, total, title)
        machine_logger.info("step_start", extra={"event": "step_start", "step": name, "dry_run": dry_run})
        try:
            step(signature, report, options)
        except Exception as exc:  # noqa: BLE001 - a failed step must not stop the run
            human_logger.warning("Step %s failed: %s", name, exc)
            report.failed(name, "step", name, repr(exc))
        machine_logger.info("step_end", extra={"event": "step_end", "step": name})

    return report


__all__ = ["SCRUB_STEPS", "ScrubOptions", "run_scrub"]
