"""!
@brief Registry helpers and the registry scrubber.
@details Wraps ``winreg`` for reads and value edits (environment blocks, setup
metadata) and ``reg.exe`` for recursive key deletion and ``.reg`` exports. The
scrubber only ever targets the fixed allow-list carried by the product
signature; no keys are discovered dynamically.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Tuple

from . import constants, exec_utils, logging_ext
from .report import RunReport

try:  # pragma: no cover - exercised through mocks on non-Windows platforms.
    import winreg
except ImportError:  # pragma: no cover - handled gracefully during tests.
    winreg = None  # type: ignore[assignment]

SCRUBBER = "registry"


def _ensure_winreg() -> None:
    """!
    @brief Raise an informative error when ``winreg`` is unavailable.
    """

    if winreg is None:  # pragma: no cover - simplifies non-Windows test runs.
        raise FileNotFoundError("Windows registry APIs are unavailable on this platform")


def _view_flag() -> int:
    # Always address the native 64-bit view; WOW6432Node paths are spelled out.
    return getattr(winreg, "KEY_WOW64_64KEY", 0)


def parse_key(key: str) -> Tuple[int, str]:
    """!
    @brief Split ``HKLM\\SOFTWARE\\...`` into a hive handle and subkey path.
    @raises ValueError When the hive prefix is not recognised.
    """

    hive, _, subkey = str(key).strip().strip("\\").partition("\\")
    try:
        root = constants.REGISTRY_ROOTS[hive.upper()]
    except KeyError:
        raise ValueError(f"Unsupported registry hive in {key!r}") from None
    return root, subkey


def hive_name(root: int) -> str:
    mapping = {
        constants.HKLM: "HKLM",
        constants.HKCU: "HKCU",
        constants.HKU: "HKU",
    }
    return mapping.get(root, hex(root))


@contextmanager
def open_key(root: int, path: str, access: int | None = None) -> Iterator[Any]:
    """!
    @brief Context manager that mirrors ``winreg.OpenKey`` while ensuring
    handles are closed correctly.
    """

    _ensure_winreg()
    access_mask = access if access is not None else winreg.KEY_READ  # type: ignore[union-attr]
    handle = winreg.OpenKey(root, path, 0, access_mask | _view_flag())  # type: ignore[union-attr]
    try:
        yield handle
    finally:
        winreg.CloseKey(handle)  # type: ignore[union-attr]


def key_exists(root: int, path: str) -> bool:
    try:
        with open_key(root, path):
            return True
    except OSError:
        return False


def get_value(root: int, path: str, value_name: str, default: Any | None = None) -> Any | None:
    """!
    @brief Read ``value_name`` beneath ``root``/``path``; ``default`` when absent.
    """

    found = get_value_and_type(root, path, value_name)
    if found is None:
        return default
    return found[0]


def get_value_and_type(root: int, path: str, value_name: str) -> Tuple[Any, int] | None:
    """!
    @brief Read a value together with its registry type.
    @returns ``(value, type)`` or ``None`` when the key or value is missing.
    """

    try:
        with open_key(root, path) as handle:
            value, value_type = winreg.QueryValueEx(handle, value_name)  # type: ignore[union-attr]
    except OSError:
        return None
    return value, value_type


def set_value(root: int, path: str, value_name: str, value: Any, value_type: int) -> None:
    """!
    @brief Write ``value_name`` with an explicit registry type.
    @raises OSError When the key cannot be opened for writing.
    """

    _ensure_winreg()
    with open_key(root, path, winreg.KEY_SET_VALUE) as handle:  # type: ignore[union-attr]
        winreg.SetValueEx(handle, value_name, 0, value_type, value)  # type: ignore[union-attr]


def delete_value(root: int, path: str, value_name: str) -> None:
    """!
    @raises OSError When the value cannot be removed.
    """

    _ensure_winreg()
    with open_key(root, path, winreg.KEY_SET_VALUE) as handle:  # type: ignore[union-attr]
        winreg.DeleteValue(handle, value_name)  # type: ignore[union-attr]


def delete_key(key: str, *, dry_run: bool = False) -> exec_utils.CommandResult:
    """!
    @brief Recursively delete ``key`` using ``reg delete /f``.
    """

    return exec_utils.run_command(
        ["reg.exe", "delete", key, "/f", "/reg:64"],
        event="registry_delete",
        timeout=60,
        dry_run=dry_run,
        human_message=f"Deleting registry key {key}",
        extra={"key": key},
    )


def export_keys(keys: List[str], destination: Path, *, dry_run: bool = False) -> List[Path]:
    """!
    @brief Export registry keys to ``.reg`` files in ``destination``.
    @returns Paths of the exports that succeeded (or would be written in dry-run).
    """

    human_logger = logging_ext.get_human_logger()
    dest_path = Path(destination)
    if not dry_run:
        dest_path.mkdir(parents=True, exist_ok=True)

    exported: List[Path] = []
    for key in keys:
        safe_name = key.replace("\\", "_").replace("/", "_").replace(" ", "_")
        export_path = dest_path / f"{safe_name}.reg"
        result = exec_utils.run_command(
            ["reg.exe", "export", key, str(export_path), "/y", "/reg:64"],
            event="registry_export",
            timeout=120,
            dry_run=dry_run,
            extra={"key": key, "file": str(export_path)},
        )
        if result.skipped or result.ok:
            exported.append(export_path)
        else:
            human_logger.warning("Could not back up %s: %s", key, result.describe())
    return exported


def scrub_registry(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
    backup: Path | None = None,
) -> None:
    """!
    @brief Delete every allow-listed key that currently exists.
    @details Missing keys are skipped silently. Each deletion is attempted
    exactly once; a failure is recorded and the next key is processed.
    """

    human_logger = logging_ext.get_human_logger()

    present: List[str] = []
    for key in signature.registry_keys:
        root, subkey = parse_key(key)
        if key_exists(root, subkey):
            present.append(key)
        else:
            human_logger.debug("Registry key %s not present", key)
            report.skipped(SCRUBBER, "delete", key, "not present")

    if not present:
        human_logger.info("No %s registry keys found.", signature.display_name)
        return

    if backup is not None:
        export_keys(present, backup, dry_run=dry_run)

    for key in present:
        result = delete_key(key, dry_run=dry_run)
        if result.skipped:
            report.simulated(SCRUBBER, "delete", key)
        elif result.ok:
            human_logger.info("Deleted registry key %s", key)
            report.done(SCRUBBER, "delete", key)
        else:
            human_logger.warning("Failed to delete registry key %s: %s", key, result.describe())
            report.failed(SCRUBBER, "delete", key, result.describe())


__all__ = [
    "delete_key",
    "delete_value",
    "export_keys",
    "get_value",
    "get_value_and_type",
    "hive_name",
    "key_exists",
    "open_key",
    "parse_key",
    "scrub_registry",
    "set_value",
]
