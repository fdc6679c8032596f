"""!
@brief Persistent environment variable cleanup.
@details Works on the registry-backed environment blocks for the machine and
user scopes. ``Path`` segments that carry the product signature are removed,
everything else is kept byte-for-byte in its original order, and the value is
only written back when it actually changed. The product-specific variable is
deleted outright. One ``WM_SETTINGCHANGE`` broadcast follows any change.
"""
from __future__ import annotations

import ctypes
import os
from typing import Iterable

from . import constants, logging_ext, registry_tools, safety
from .report import RunReport

SCRUBBER = "environment"

_HWND_BROADCAST = 0xFFFF
_WM_SETTINGCHANGE = 0x001A
_SMTO_ABORTIFHUNG = 0x0002


def filter_path_value(value: str, signature: constants.ProductSignature) -> str:
    """!
    @brief Drop empty and signature-bearing segments from a ``Path``-style value.
    """

    separator = signature.path_separator
    kept = [
        segment
        for segment in value.split(separator)
        if segment and not safety.contains_signature(segment, signature)
    ]
    return separator.join(kept)


def scrub_scope(
    scope: str,
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> bool:
    """!
    @brief Clean the ``Path`` and product variables of one scope.
    @returns ``True`` when a value was written or deleted.
    """

    human_logger = logging_ext.get_human_logger()
    root, subkey = constants.ENVIRONMENT_SCOPES[scope]
    changed = False

    path_name = f"{scope}:{signature.path_variable}"
    found = registry_tools.get_value_and_type(root, subkey, signature.path_variable)
    if found is None or not str(found[0]).strip():
        human_logger.debug("%s is empty or not set", path_name)
    else:
        original, value_type = str(found[0]), found[1]
        updated = filter_path_value(original, signature)
        if updated == original:
            human_logger.info("%s contains no %s entries", path_name, signature.display_name)
        else:
            removed = [
                segment
                for segment in original.split(signature.path_separator)
                if segment and safety.contains_signature(segment, signature)
            ]
            detail = "removed " + ", ".join(removed) if removed else "dropped empty segments"
            if dry_run:
                human_logger.info("Dry-run: would rewrite %s (%s)", path_name, detail)
                report.simulated(SCRUBBER, "rewrite", path_name, detail)
            else:
                try:
                    registry_tools.set_value(root, subkey, signature.path_variable, updated, value_type)
                except OSError as exc:
                    human_logger.warning("Failed to rewrite %s: %s", path_name, exc)
                    report.failed(SCRUBBER, "rewrite", path_name, str(exc))
                else:
                    human_logger.info("Rewrote %s (%s)", path_name, detail)
                    report.done(SCRUBBER, "rewrite", path_name, detail)
                    changed = True

    variable_name = f"{scope}:{signature.product_variable}"
    if registry_tools.get_value_and_type(root, subkey, signature.product_variable) is None:
        human_logger.debug("%s is not set", variable_name)
    elif dry_run:
        human_logger.info("Dry-run: would delete %s", variable_name)
        report.simulated(SCRUBBER, "unset", variable_name)
    else:
        try:
            registry_tools.delete_value(root, subkey, signature.product_variable)
        except OSError as exc:
            human_logger.warning("Failed to delete %s: %s", variable_name, exc)
            report.failed(SCRUBBER, "unset", variable_name, str(exc))
        else:
            human_logger.info("Deleted %s", variable_name)
            report.done(SCRUBBER, "unset", variable_name)
            changed = True

    return changed


def broadcast_environment_change() -> bool:
    """!
    @brief Tell running applications the persistent environment changed.
    @returns ``True`` when the broadcast was delivered.
    """

    if os.name != "nt":
        return False
    try:
        user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        outcome = ctypes.c_ulong()
        sent = user32.SendMessageTimeoutW(
            _HWND_BROADCAST,
            _WM_SETTINGCHANGE,
            0,
            "Environment",
            _SMTO_ABORTIFHUNG,
            5000,
            ctypes.byref(outcome),
        )
    except (AttributeError, OSError) as exc:
        logging_ext.get_human_logger().debug("Environment change broadcast failed: %s", exc)
        return False
    return bool(sent)


def scrub_environment(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
    scopes: Iterable[str] = (constants.MACHINE_SCOPE, constants.USER_SCOPE),
) -> None:
    human_logger = logging_ext.get_human_logger()
    changed = False
    for scope in scopes:
        try:
            changed = scrub_scope(scope, signature, report, dry_run=dry_run) or changed
        except Exception as exc:  # noqa: BLE001 - one scope must not block the other
            human_logger.warning("Could not clean %s environment: %s", scope, exc)
            report.failed(SCRUBBER, "scope", scope, str(exc))
    if changed:
        broadcast_environment_change()


__all__ = [
    "broadcast_environment_change",
    "filter_path_value",
    "scrub_environment",
    "scrub_scope",
]
