"""!
@brief Filesystem utilities and the directory scrubber.
@details :func:`scrub_directory` is the one routine every path deletion goes
through: it applies :func:`safety.check_directory_candidate`, takes ownership
of the tree (best-effort), and removes it recursively, recording the result
instead of raising. It knows nothing about whether it was handed an install
root or a package cache.
"""
from __future__ import annotations

import os
import shutil
import stat
import sys
from pathlib import Path
from typing import List, Mapping

from . import constants, elevation, exec_utils, logging_ext, safety
from .report import RunReport

SCRUBBER = "directories"

ADMINISTRATORS_SID = "*S-1-5-32-544"


def _clear_readonly_and_retry(function, path: str, exc) -> None:
    """!
    @brief ``shutil.rmtree`` error hook clearing read-only attributes.
    @details Accepts either the exception (``onexc``) or an ``exc_info`` tuple
    (``onerror``).
    """

    error = exc[1] if isinstance(exc, tuple) else exc
    if isinstance(error, PermissionError):
        os.chmod(path, stat.S_IWRITE)
        function(path)
    else:
        raise error


def force_remove(path: str | Path) -> None:
    """!
    @brief Delete a file or directory tree, clearing read-only attributes.
    @raises OSError When something in the tree cannot be removed.
    """

    target = Path(path)
    if target.is_dir() and not target.is_symlink():
        if sys.version_info >= (3, 12):
            shutil.rmtree(target, onexc=_clear_readonly_and_retry)
        else:  # pragma: no cover - interpreter dependent
            shutil.rmtree(target, onerror=_clear_readonly_and_retry)
        return
    try:
        target.unlink()
    except PermissionError:
        os.chmod(target, stat.S_IWRITE)
        target.unlink()


def take_ownership(path: str | Path, *, user: str | None = None, dry_run: bool = False) -> List[str]:
    """!
    @brief Give Administrators and the invoking user ownership and full control.
    @details Runs ``takeown /R`` followed by ``icacls /grant`` for the
    Administrators group and ``user``. Every command is attempted even if an
    earlier one fails.
    @returns Failure descriptions; empty when every command succeeded.
    """

    target = str(path)
    grantees = [ADMINISTRATORS_SID]
    account = user if user is not None else elevation.current_username()
    if account:
        grantees.append(account)

    commands = [["takeown.exe", "/F", target, "/R", "/A", "/D", "Y"]]
    for grantee in grantees:
        commands.append(["icacls.exe", target, "/grant", f"{grantee}:(OI)(CI)F", "/T", "/C", "/Q"])

    failures: List[str] = []
    for command in commands:
        result = exec_utils.run_command(
            command,
            event="filesystem_ownership",
            timeout=600,
            dry_run=dry_run,
            extra={"path": target},
        )
        if not (result.skipped or result.ok):
            failures.append(f"{command[0]}: {result.describe()}")
    return failures


def scrub_directory(
    path: str | Path,
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> bool:
    """!
    @brief Delete ``path`` recursively when it passes the safety predicate.
    @returns ``True`` when the tree was removed (or would be, in dry-run).
    """

    human_logger = logging_ext.get_human_logger()

    verdict = safety.check_directory_candidate(path, signature)
    target = verdict.path
    if not verdict.eligible:
        if verdict.warning:
            human_logger.warning("Skipping %s: %s", target, verdict.reason)
        else:
            human_logger.info("Skipping %s: %s", target, verdict.reason)
        report.skipped(SCRUBBER, "delete", target, verdict.reason, warning=verdict.warning)
        return False

    if dry_run:
        human_logger.info("Dry-run: would take ownership of and delete %s", target)
        report.simulated(SCRUBBER, "delete", target)
        return True

    try:
        failures = take_ownership(target)
    except Exception as exc:  # noqa: BLE001 - ownership is only a mitigation
        failures = [str(exc)]
    for failure in failures:
        human_logger.warning("Ownership adjustment for %s incomplete (%s); deleting anyway", target, failure)

    human_logger.info("Deleting %s", target)
    try:
        force_remove(target)
    except OSError as exc:
        human_logger.warning("Failed to delete %s: %s", target, exc)
        report.failed(SCRUBBER, "delete", target, str(exc))
        return False

    report.done(SCRUBBER, "delete", target)
    return True


def get_default_log_directory(
    *, env: Mapping[str, str] | None = None, platform: str | None = None
) -> Path:
    """!
    @brief Resolve the default log directory.
    @details ``CYGWIN_JANITOR_LOGDIR`` wins; otherwise ``%ProgramData%`` on
    Windows, ``$XDG_STATE_HOME`` (or ``~/.local/state``) elsewhere.
    """

    environment = env if env is not None else os.environ
    system = platform if platform is not None else os.name

    override = environment.get("CYGWIN_JANITOR_LOGDIR")
    if override:
        return Path(override)
    if system == "nt":
        base = environment.get("ProgramData") or environment.get("PROGRAMDATA") or r"C:\ProgramData"
        return Path(base) / "CygwinJanitor" / "logs"
    state_home = environment.get("XDG_STATE_HOME")
    base_path = Path(state_home) if state_home else Path.home() / ".local" / "state"
    return base_path / "cygwin-janitor" / "logs"


__all__ = [
    "force_remove",
    "get_default_log_directory",
    "scrub_directory",
    "take_ownership",
]
