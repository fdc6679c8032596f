"""!
@brief Install-root and package-cache discovery.
@details Reads the setup metadata the product installer leaves in the
registry (machine 64-bit, machine 32-bit-on-64-bit, per-user) and adds the
historical default install roots. Install roots are kept only when they exist
on disk; cache paths are kept regardless because the directory scrubber checks
existence again before acting.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from . import constants, logging_ext, registry_tools


@dataclass
class InstallLocations:
    roots: List[str] = field(default_factory=list)
    caches: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.roots or self.caches)


def _dedupe(paths: Iterable[str]) -> List[str]:
    """!
    @brief Drop duplicates, comparing case-insensitively and ignoring trailing separators.
    """

    unique: Dict[str, str] = {}
    for path in paths:
        key = path.rstrip("\\/").casefold()
        unique.setdefault(key, path)
    return sorted(unique.values(), key=str.casefold)


def _read_text(root: int, subkey: str, value_name: str) -> str:
    value = registry_tools.get_value(root, subkey, value_name)
    if value is None:
        return ""
    return str(value).strip()


def discover_locations(signature: constants.ProductSignature) -> InstallLocations:
    """!
    @brief Collect candidate install roots and cache directories.
    @details Each setup registry location is read independently; a read error
    skips that location only.
    """

    human_logger = logging_ext.get_human_logger()

    roots: List[str] = []
    caches: List[str] = []

    for root, subkey in signature.setup_locations:
        label = f"{registry_tools.hive_name(root)}\\{subkey}"
        try:
            if not registry_tools.key_exists(root, subkey):
                continue
            install_root = _read_text(root, subkey, signature.install_root_value)
            cache = _read_text(root, subkey, signature.cache_value)
        except Exception as exc:  # noqa: BLE001 - a bad location must not stop discovery
            human_logger.warning("Could not read setup metadata from %s: %s", label, exc)
            continue

        if install_root:
            if os.path.exists(install_root):
                human_logger.info("Found install root %s (from %s)", install_root, label)
                roots.append(install_root)
            else:
                human_logger.info("Install root %s from %s no longer exists", install_root, label)
        if cache:
            human_logger.info("Found package cache %s (from %s)", cache, label)
            caches.append(cache)

    for default_root in signature.default_roots:
        if os.path.exists(default_root):
            human_logger.info("Found default install root %s", default_root)
            roots.append(default_root)

    return InstallLocations(roots=_dedupe(roots), caches=_dedupe(caches))


__all__ = ["InstallLocations", "discover_locations"]
