"""!
@brief Elevation and user-context helpers.
@details Detects whether the process holds administrative rights (the
precondition for every mutating step) and resolves the invoking user's name,
which the directory scrubber grants ownership to alongside Administrators.
"""
from __future__ import annotations

import ctypes
import os


def is_admin() -> bool:
    """!
    @brief Determine whether the current process token has administrative rights.
    """

    if os.name != "nt":
        return False
    try:
        shell32 = ctypes.windll.shell32  # type: ignore[attr-defined]
        return bool(shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def current_username() -> str:
    """!
    @brief Return the current user name best-effort.
    @details ``USERDOMAIN`` is prefixed when present so ``icacls`` resolves the
    account unambiguously on domain-joined hosts.
    """

    name = ""
    try:
        name = os.getlogin()
    except OSError:
        name = os.environ.get("USERNAME") or os.environ.get("USER") or ""
    if not name:
        return ""
    domain = os.environ.get("USERDOMAIN", "")
    if domain and "\\" not in name:
        return f"{domain}\\{name}"
    return name


__all__ = ["current_username", "is_admin"]
