"""!
@brief Version metadata for Cygwin Janitor.
@details The installed distribution metadata is authoritative; a source
checkout falls back to the ``VERSION`` file shipped inside the package. The
build tag distinguishes installed runs from checkout runs in log bundles.
"""
from __future__ import annotations

import platform
from importlib import metadata, resources
from typing import Dict, Tuple

__all__ = ["DISTRIBUTION_NAME", "__version__", "__build__", "build_info"]

DISTRIBUTION_NAME = "cygwin-janitor"


def _load_version() -> Tuple[str, str]:
    """!
    @returns ``(version, build)`` where build is ``"installed"`` or ``"dev"``.
    """

    try:
        return metadata.version(DISTRIBUTION_NAME), "installed"
    except metadata.PackageNotFoundError:
        pass

    version_path = resources.files(__package__).joinpath("VERSION")
    try:
        return version_path.read_text(encoding="utf-8").strip(), "dev"
    except FileNotFoundError:  # pragma: no cover - stripped source tree
        return "0.0.0", "dev"


__version__, __build__ = _load_version()


def build_info() -> Dict[str, str]:
    """!
    @brief Version metadata plus the interpreter and host it runs on.
    """

    return {
        "version": __version__,
        "build": __build__,
        "python": platform.python_version(),
        "platform": platform.platform(terse=True),
    }
