"""!
@brief Service discovery and removal.
@details Enumerates Windows services through CIM so the executable path of
each one is known, selects those whose path carries the product signature, and
removes them with ``sc.exe``: stop (when running) then delete. The delete is
attempted whether or not the stop succeeded.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

from . import constants, exec_utils, logging_ext, safety
from .report import RunReport

SCRUBBER = "services"

SERVICE_QUERY = (
    "Get-CimInstance -ClassName Win32_Service | "
    "Select-Object Name,DisplayName,PathName,State | "
    "ConvertTo-Json -Compress"
)

# sc.exe: ERROR_SERVICE_NOT_ACTIVE
_NOT_ACTIVE_RC = 1062


@dataclass(frozen=True)
class ServiceRecord:
    name: str
    display_name: str = ""
    path: str = ""
    state: str = ""

    @property
    def stopped(self) -> bool:
        return self.state.strip().lower() == "stopped"


def list_services() -> List[ServiceRecord]:
    """!
    @brief Enumerate all registered services.
    @raises RuntimeError When the CIM query fails.
    """

    records: List[ServiceRecord] = []
    for entry in exec_utils.run_powershell_json(SERVICE_QUERY, event="service_enumerate"):
        name = str(entry.get("Name") or "").strip()
        if not name:
            continue
        records.append(
            ServiceRecord(
                name=name,
                display_name=str(entry.get("DisplayName") or ""),
                path=str(entry.get("PathName") or ""),
                state=str(entry.get("State") or ""),
            )
        )
    return records


def stop_service(name: str, *, dry_run: bool = False, timeout: int = 60) -> exec_utils.CommandResult:
    return exec_utils.run_command(
        ["sc.exe", "stop", name],
        event="service_stop",
        timeout=timeout,
        dry_run=dry_run,
        human_message=f"Stopping service {name}",
        extra={"service": name},
    )


def delete_service(name: str, *, dry_run: bool = False, timeout: int = 60) -> exec_utils.CommandResult:
    return exec_utils.run_command(
        ["sc.exe", "delete", name],
        event="service_delete",
        timeout=timeout,
        dry_run=dry_run,
        human_message=f"Deleting service {name}",
        extra={"service": name},
    )


def scrub_services(
    signature: constants.ProductSignature,
    report: RunReport,
    *,
    dry_run: bool = False,
) -> None:
    """!
    @brief Stop and delete every service whose executable belongs to the product.
    """

    human_logger = logging_ext.get_human_logger()

    try:
        services = list_services()
    except Exception as exc:  # noqa: BLE001 - enumeration failure is non-fatal
        human_logger.warning("Could not enumerate services: %s", exc)
        report.failed(SCRUBBER, "enumerate", "services", str(exc))
        return

    matches = [service for service in services if safety.contains_signature(service.path, signature)]
    if not matches:
        human_logger.info("No %s services found.", signature.display_name)
        return

    for service in matches:
        human_logger.info("Found service %s (%s): %s", service.name, service.display_name, service.path)

        if service.stopped:
            human_logger.debug("Service %s is already stopped", service.name)
        else:
            stop_result = stop_service(service.name, dry_run=dry_run)
            if stop_result.skipped:
                report.simulated(SCRUBBER, "stop", service.name)
            elif stop_result.ok or stop_result.returncode == _NOT_ACTIVE_RC:
                report.done(SCRUBBER, "stop", service.name)
            else:
                human_logger.warning(
                    "Failed to stop service %s: %s; deleting anyway", service.name, stop_result.describe()
                )
                report.failed(SCRUBBER, "stop", service.name, stop_result.describe())

        delete_result = delete_service(service.name, dry_run=dry_run)
        if delete_result.skipped:
            report.simulated(SCRUBBER, "delete", service.name)
        elif delete_result.ok:
            human_logger.info("Deleted service %s", service.name)
            report.done(SCRUBBER, "delete", service.name)
        else:
            human_logger.warning("Failed to delete service %s: %s", service.name, delete_result.describe())
            report.failed(SCRUBBER, "delete", service.name, delete_result.describe())


__all__ = [
    "ServiceRecord",
    "delete_service",
    "list_services",
    "scrub_services",
    "stop_service",
]
