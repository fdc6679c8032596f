"""!
@brief Desktop and Start Menu shortcut cleanup.
@details Searches the public and per-user desktops and the machine and
per-user Start Menu ``Programs`` folders. Matching ``.lnk`` files are removed,
as are immediate subfolders named after the product. Name matching follows the
host's filesystem case rules.
"""
from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import List, Mapping

from . import constants, fs_tools, logging_ext
from .report import RunReport

SCRUBBER = "shortcuts"


def shortcut_directories(env: Mapping[str, str] | None = None) -> List[Path]:
    """!
    @brief Resolve the UI directories to search.
    @details Locations whose base variable is unset are left out.
    """

    environment = env if env is not None else os.environ
    directories: List[Path] = []
    for variable, relative in constants.SHORTCUT_LOCATIONS:
        base = environment.get(variable)
        if not base:
            continue
        candidate = Path(base) / Path(relative.replace("\\", os.sep))
        if candidate not in directories:
            directories.append(candidate)
    return directories


def _remove(target: Path, kind: str, report: RunReport, *, dry_run: bool) -> None:
    human_logger = logging_ext.get_human_logger()
    if dry_run:
        human_logger.info("Dry-run: would delete %s %s", kind, target)
        report.simulated(SCRUBBER, f"delete-{kind}", target)
        return
    try:
        fs_tools.force_remove(target)
    except OSError as exc:
        human_logger.warning("Failed to delete %s %s: %s", kind, target, exc)
        report.failed(SCRUBBER, f"delete-{kind}", target, str(exc))
    else:
        human_logger.info("Deleted %s %s", kind, target)
        report.done(SCRUBBER, f"delete-{kind}", target)


def scrub_directory_shortcuts(
    directory: Path,
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> None:
    human_logger = logging_ext.get_human_logger()

    seen: set[Path] = set()
    for pattern in signature.shortcut_patterns:
        try:
            matches = sorted(path for path in directory.glob(pattern) if path.is_file())
        except OSError as exc:
            human_logger.warning("Could not search %s for %s: %s", directory, pattern, exc)
            report.failed(SCRUBBER, "enumerate", directory / pattern, str(exc))
            continue
        for shortcut in matches:
            if shortcut in seen:
                continue
            seen.add(shortcut)
            _remove(shortcut, "file", report, dry_run=dry_run)

    folder_pattern = f"{signature.display_name}*"
    try:
        folders = sorted(
            child for child in directory.iterdir() if child.is_dir() and fnmatch.fnmatch(child.name, folder_pattern)
        )
    except OSError as exc:
        human_logger.warning("Could not list %s: %s", directory, exc)
        report.failed(SCRUBBER, "enumerate", directory, str(exc))
        return
    for folder in folders:
        _remove(folder, "folder", report, dry_run=dry_run)


def scrub_shortcuts(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
    env: Mapping[str, str] | None = None,
) -> None:
    human_logger = logging_ext.get_human_logger()
    for directory in shortcut_directories(env):
        if not directory.is_dir():
            human_logger.debug("Shortcut location %s does not exist", directory)
            continue
        scrub_directory_shortcuts(directory, signature, report, dry_run=dry_run)


__all__ = [
    "scrub_directory_shortcuts",
    "scrub_shortcuts",
    "shortcut_directories",
]
