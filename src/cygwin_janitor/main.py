"""!
@brief Primary entry point for the Cygwin Janitor CLI.
@details Parses arguments, enforces the administrative precondition before
anything else touches the host, sets up logging, runs the scrub pipeline, and
prints a summary. The exit status is non-zero only when the process is not
elevated; individual scrub failures are reported but never fail the run.
"""
from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Iterable, Optional

from . import constants, elevation, exec_utils, fs_tools, logging_ext, safety, scrub, version
from .report import RunReport

EXIT_OK = 0
EXIT_NOT_ELEVATED = 1


def build_arg_parser() -> argparse.ArgumentParser:
    """!
    @brief Create the top-level argument parser.
    """

    parser = argparse.ArgumentParser(
        prog="cygwin-janitor",
        description="Remove every trace of a Cygwin installation from this machine.",
    )
    metadata = version.build_info()
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"{metadata['version']} ({metadata['build']})",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report what would be removed without changing anything.")
    parser.add_argument("--logdir", metavar="DIR", help="Directory for human/JSONL log output.")
    parser.add_argument("--backup", metavar="DIR", help="Export registry keys to DIR before deleting them.")
    parser.add_argument("--report", metavar="FILE", help="Write the run report as JSON to FILE.")
    parser.add_argument("--timeout", metavar="SEC", type=int, help="Upper bound in seconds for each external command.")
    parser.add_argument("--quiet", action="store_true", help="Minimal console output (errors only).")
    parser.add_argument("--json", action="store_true", help="Mirror structured events to stdout.")
    return parser


def _resolve_log_directory(candidate: Optional[str]) -> pathlib.Path:
    if candidate:
        return pathlib.Path(candidate).expanduser().resolve()
    return fs_tools.get_default_log_directory().expanduser()


def _bootstrap_logging(args: argparse.Namespace) -> tuple[logging.Logger, logging.Logger]:
    """!
    @brief Configure logging under ``--logdir`` (or the default directory).
    @details An unusable log directory never stops the run: logging falls back
    to the console streams and the problem is reported as a warning.
    """

    requested = args.logdir
    try:
        logdir = _resolve_log_directory(requested)
        loggers = logging_ext.setup_logging(logdir, json_to_stdout=args.json, quiet=args.quiet)
    except OSError as exc:
        args.logdir = None
        human_log, machine_log = logging_ext.setup_logging(None, json_to_stdout=args.json, quiet=args.quiet)
        human_log.warning(
            "Cannot write logs to %s (%s); logging to the console only.",
            requested or "the default log directory",
            exc,
        )
        machine_log.warning(
            "logdir_unavailable",
            extra={"event": "logdir_unavailable", "logdir": requested, "error": str(exc)},
        )
        return human_log, machine_log
    args.logdir = str(logdir)
    return loggers


def _log_summary(report: RunReport, human_log: logging.Logger, *, dry_run: bool) -> None:
    """!
    @brief Emit the end-of-run summary and any warnings worth repeating.
    """

    counts = report.summary_counts()
    human_log.info(
        "Summary: %d removed, %d skipped, %d failed%s",
        counts["done"],
        counts["skipped"],
        counts["failed"],
        f", {counts['dry-run']} simulated" if dry_run else "",
    )
    for outcome in report.warnings():
        human_log.warning(
            "%s %s %s: %s%s",
            outcome.scrubber,
            outcome.action,
            outcome.target,
            outcome.status,
            f" ({outcome.detail})" if outcome.detail else "",
        )
    if report.reboot_recommended:
        human_log.warning(
            "Some items could not be removed, usually because files were still in use. "
            "Reboot and run cygwin-janitor again."
        )
    else:
        human_log.info("Cleanup complete.")


def main(argv: Optional[Iterable[str]] = None) -> int:
    """!
    @brief Entry point invoked by the console script and the root shim.
    @returns Process exit code integer.
    """

    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        safety.require_admin(is_admin=elevation.is_admin())
    except PermissionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_NOT_ELEVATED

    human_log, machine_log = _bootstrap_logging(args)
    exec_utils.set_global_timeout(args.timeout)
    machine_log.info(
        "startup",
        extra={"event": "startup", "data": {"dry_run": bool(args.dry_run), "product": constants.CYGWIN.name}},
    )
    if args.dry_run:
        human_log.info("Dry-run: nothing will be changed.")

    backup = pathlib.Path(args.backup).expanduser().resolve() if args.backup else None
    report = scrub.run_scrub(constants.CYGWIN, dry_run=args.dry_run, backup=backup)

    _log_summary(report, human_log, dry_run=args.dry_run)
    if args.report:
        try:
            written = report.write_json(pathlib.Path(args.report).expanduser())
        except OSError as exc:
            human_log.warning("Could not write report to %s: %s", args.report, exc)
        else:
            human_log.info("Wrote report to %s", written)

    machine_log.info("run_end", extra={"event": "run_end", "counts": report.summary_counts()})
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - for manual execution
    sys.exit(main())
