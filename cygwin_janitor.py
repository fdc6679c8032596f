"""!
@brief Shim entry point for Cygwin Janitor.
@details Makes the package in ``src/`` importable from a plain checkout before
transferring control to :func:`cygwin_janitor.main.main`.
"""
from __future__ import annotations

import os
import sys

__all__ = ["main"]

_REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
_SRC_PATH = os.path.join(_REPO_ROOT, "src")


def _prepend_src_to_sys_path() -> None:
    if os.path.isdir(_SRC_PATH) and _SRC_PATH not in sys.path:
        sys.path.insert(0, _SRC_PATH)


def main() -> int:
    """!
    @brief Invoke the package entry point after preparing ``sys.path``.
    @returns Exit status propagated from :func:`cygwin_janitor.main.main`.
    """

    _prepend_src_to_sys_path()
    from cygwin_janitor.main import main as package_main

    return package_main()


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
