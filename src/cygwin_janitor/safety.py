"""!
@brief Safety and guardrail enforcement helpers.
@details Holds the checks every destructive step depends on: the
administrative precondition and the directory deletion predicate. A candidate
directory is eligible for deletion only when it exists, is not the root of its
drive or share, and carries the product signature in its path. The three
conditions are evaluated in that order and each one alone is enough to veto
the deletion.
"""
from __future__ import annotations

import ntpath
import os
from dataclasses import dataclass
from pathlib import Path

from . import constants


@dataclass(frozen=True)
class Verdict:
    """!
    @brief Decision returned by :func:`check_directory_candidate`.
    @details ``warning`` is set for rejections an operator should notice (root
    or signature mismatch); a missing path is a routine skip.
    """

    eligible: bool
    reason: str = ""
    warning: bool = False
    path: str = ""


def contains_signature(text: object, signature: constants.ProductSignature) -> bool:
    """!
    @brief Case-insensitive substring match against the product name.
    """

    if text is None:
        return False
    return signature.name.casefold() in str(text).casefold()


def normalize_candidate(path: str | Path) -> str:
    """!
    @brief Collapse ``.``/``..`` segments and make ``path`` absolute.
    @details Drive-qualified and UNC spellings are normalised with Windows
    rules on every host; anything else goes through :func:`os.path.abspath`.
    """

    text = str(path).strip()
    drive, _ = ntpath.splitdrive(text)
    if drive:
        return ntpath.normpath(text)
    return os.path.abspath(text)


def is_drive_root(path: str | Path) -> bool:
    """!
    @brief Report whether ``path`` names the root of a drive, share, or filesystem.
    @details The path is normalised first, so ``C:\\cygwin\\..`` counts as a root
    just like ``C:``, ``C:\\``, ``C:/``, ``\\\\server\\share\\`` and ``/``. Windows
    spellings are recognised on every host so the guard behaves the same under
    test.
    """

    text = str(path).strip()
    if not text:
        return False
    text = normalize_candidate(text)
    stripped = text.rstrip("\\/")
    if not stripped:
        return True
    drive, tail = ntpath.splitdrive(stripped)
    if drive and not tail.strip("\\/"):
        return True
    anchor = Path(text).anchor.rstrip("\\/")
    return bool(anchor) and stripped == anchor


def check_directory_candidate(path: str | Path, signature: constants.ProductSignature) -> Verdict:
    """!
    @brief Evaluate the deletion predicate for one candidate path.
    @details Every check runs against the normalised path, which is returned in
    ``Verdict.path`` so the caller deletes exactly what was checked.
    """

    target = normalize_candidate(path)
    if not os.path.exists(target):
        return Verdict(False, "does not exist", path=target)
    if is_drive_root(target):
        return Verdict(False, "refusing to delete a drive root", warning=True, path=target)
    if not contains_signature(target, signature):
        return Verdict(False, f"path does not contain '{signature.name}'", warning=True, path=target)
    return Verdict(True, path=target)


def require_admin(*, is_admin: bool) -> None:
    """!
    @brief Enforce the administrative precondition.
    @raises PermissionError If the process is not elevated.
    """

    if not is_admin:
        raise PermissionError("Administrative rights are required; re-run from an elevated prompt.")


__all__ = [
    "Verdict",
    "check_directory_candidate",
    "contains_signature",
    "is_drive_root",
    "normalize_candidate",
    "require_admin",
]
