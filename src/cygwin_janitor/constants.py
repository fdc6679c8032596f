"""!
@brief Static data for Cygwin Janitor.
@details Centralises the product signature table consumed by every scrubber:
the name substring, known process names, setup registry locations, the
registry allow-list, default install roots, environment variable names, and
shortcut locations. Scrubbers receive a :class:`ProductSignature` instead of
reading module globals so a different table can be substituted in tests.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

try:  # pragma: no cover - Windows registry handles are optional on test hosts.
    import winreg
except ImportError:  # pragma: no cover - test scaffolding supplies substitutes.
    winreg = None  # type: ignore[assignment]


if winreg is not None:  # pragma: no branch - deterministic assignments.
    HKLM = winreg.HKEY_LOCAL_MACHINE
    HKCU = winreg.HKEY_CURRENT_USER
    HKU = winreg.HKEY_USERS
else:  # pragma: no cover - exercised implicitly in non-Windows CI.
    HKLM = 0x80000002
    HKCU = 0x80000001
    HKU = 0x80000003


REGISTRY_ROOTS: Dict[str, int] = {
    "HKLM": HKLM,
    "HKEY_LOCAL_MACHINE": HKLM,
    "HKCU": HKCU,
    "HKEY_CURRENT_USER": HKCU,
    "HKU": HKU,
    "HKEY_USERS": HKU,
}

MACHINE_SCOPE = "machine"
USER_SCOPE = "user"

ENVIRONMENT_SCOPES: Dict[str, Tuple[int, str]] = {
    MACHINE_SCOPE: (HKLM, r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"),
    USER_SCOPE: (HKCU, r"Environment"),
}
"""!
@brief Registry homes of the persistent environment blocks, keyed by scope.
"""

SHORTCUT_LOCATIONS: Tuple[Tuple[str, str], ...] = (
    ("PUBLIC", r"Desktop"),
    ("USERPROFILE", r"Desktop"),
    ("ProgramData", r"Microsoft\Windows\Start Menu\Programs"),
    ("APPDATA", r"Microsoft\Windows\Start Menu\Programs"),
)
"""!
@brief ``(environment variable, relative path)`` pairs naming the desktop and
start-menu directories searched for shortcuts.
"""


@dataclass(frozen=True)
class ProductSignature:
    """!
    @brief Policy data describing every trace a product leaves on the host.
    """

    name: str
    display_name: str
    known_processes: Tuple[str, ...]
    setup_locations: Tuple[Tuple[int, str], ...]
    install_root_value: str
    cache_value: str
    default_roots: Tuple[str, ...]
    registry_keys: Tuple[str, ...]
    path_variable: str
    product_variable: str
    shortcut_patterns: Tuple[str, ...]
    path_separator: str = ";"


CYGWIN = ProductSignature(
    name="cygwin",
    display_name="Cygwin",
    known_processes=(
        "bash.exe",
        "mintty.exe",
        "XWin.exe",
        "startxwin.exe",
        "xwin-xdg-menu.exe",
        "cygrunsrv.exe",
    ),
    setup_locations=(
        (HKLM, r"SOFTWARE\Cygwin\setup"),
        (HKLM, r"SOFTWARE\WOW6432Node\Cygwin\setup"),
        (HKCU, r"SOFTWARE\Cygwin\setup"),
    ),
    install_root_value="rootdir",
    cache_value="last-cache",
    default_roots=(r"C:\cygwin", r"C:\cygwin64"),
    registry_keys=(
        r"HKLM\SOFTWARE\Cygwin",
        r"HKLM\SOFTWARE\WOW6432Node\Cygwin",
        r"HKCU\SOFTWARE\Cygwin",
        # Legacy vendor name used by pre-1.7 releases.
        r"HKLM\SOFTWARE\Cygnus Solutions",
        r"HKLM\SOFTWARE\WOW6432Node\Cygnus Solutions",
        r"HKCU\SOFTWARE\Cygnus Solutions",
    ),
    path_variable="Path",
    product_variable="CYGWIN",
    shortcut_patterns=("Cygwin*.lnk", "*Cygwin*Terminal*.lnk"),
)
"""!
@brief The only signature this tool ships with.
"""


__all__ = [
    "CYGWIN",
    "ENVIRONMENT_SCOPES",
    "HKCU",
    "HKLM",
    "HKU",
    "MACHINE_SCOPE",
    "ProductSignature",
    "REGISTRY_ROOTS",
    "SHORTCUT_LOCATIONS",
    "USER_SCOPE",
]
