"""!
@brief Service scrubber tests.
@details The CIM query and ``sc.exe`` invocations are intercepted so the
matching rule, stop/delete sequencing, and failure handling can be checked.
"""

from __future__ import annotations

import pathlib
import sys
from collections.abc import Sequence

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cygwin_janitor import constants, exec_utils, services  # noqa: E402
from cygwin_janitor.report import DONE, DRY_RUN, FAILED, RunReport  # noqa: E402


def _command_result(command: Sequence[str], *, returncode: int = 0, skipped: bool = False) -> exec_utils.CommandResult:
    return exec_utils.CommandResult(
        command=[str(part) for part in command],
        returncode=returncode,
        stdout="",
        stderr="" if returncode == 0 else "[SC] failure",
        duration=0.0,
        skipped=skipped,
    )


SERVICE_LISTING = [
    {"Name": "cygsshd", "DisplayName": "CYGWIN cygsshd", "PathName": r"C:\CYGWIN64\bin\cygrunsrv.exe", "State": "Running"},
    {"Name": "cygserver", "DisplayName": "Cygserver", "PathName": r"C:\cygwin\bin\cygrunsrv.exe", "State": "Stopped"},
    {"Name": "Spooler", "DisplayName": "Print Spooler", "PathName": r"C:\Windows\System32\spoolsv.exe", "State": "Running"},
    {"Name": "NoPath", "DisplayName": "Driver", "PathName": None, "State": "Running"},
]


def _install(monkeypatch, *, listing=SERVICE_LISTING, failing: dict[tuple[str, str], int] | None = None):
    commands: list[list[str]] = []
    failing = failing or {}

    monkeypatch.setattr(exec_utils, "run_powershell_json", lambda script, **kwargs: list(listing))

    def fake_run(command, *, event, dry_run=False, **kwargs):
        commands.append([str(part) for part in command])
        if dry_run:
            return _command_result(command, skipped=True)
        return _command_result(command, returncode=failing.get((command[1], command[2]), 0))

    monkeypatch.setattr(exec_utils, "run_command", fake_run)
    return commands


def test_list_services_parses_cim_output(monkeypatch) -> None:
    _install(monkeypatch)

    records = services.list_services()

    assert [record.name for record in records] == ["cygsshd", "cygserver", "Spooler", "NoPath"]
    assert records[1].stopped
    assert records[3].path == ""


def test_only_signature_services_are_touched(monkeypatch) -> None:
    commands = _install(monkeypatch)
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report)

    assert commands == [
        ["sc.exe", "stop", "cygsshd"],
        ["sc.exe", "delete", "cygsshd"],
        ["sc.exe", "delete", "cygserver"],
    ]
    assert report.targets("services", "delete") == ["cygsshd", "cygserver"]


def test_delete_attempted_after_stop_failure(monkeypatch) -> None:
    commands = _install(monkeypatch, failing={("stop", "cygsshd"): 1053})
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report)

    assert ["sc.exe", "delete", "cygsshd"] in commands
    statuses = [(outcome.action, outcome.target, outcome.status) for outcome in report.outcomes]
    assert ("stop", "cygsshd", FAILED) in statuses
    assert ("delete", "cygsshd", DONE) in statuses


def test_delete_failure_continues_with_next_service(monkeypatch) -> None:
    commands = _install(monkeypatch, failing={("delete", "cygsshd"): 5})
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report)

    assert commands[-1] == ["sc.exe", "delete", "cygserver"]
    assert report.targets("services", "delete", FAILED) == ["cygsshd"]
    assert report.targets("services", "delete", DONE) == ["cygserver"]


def test_stop_of_inactive_service_is_not_a_failure(monkeypatch) -> None:
    _install(monkeypatch, failing={("stop", "cygsshd"): 1062})
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report)

    assert report.targets("services", "stop") == ["cygsshd"]


def test_enumeration_failure_is_recorded(monkeypatch) -> None:
    def broken(script, **kwargs):
        raise RuntimeError("PowerShell query failed (exit code 1)")

    monkeypatch.setattr(exec_utils, "run_powershell_json", broken)
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report)

    assert report.outcomes[0].action == "enumerate"
    assert report.outcomes[0].status == FAILED


def test_no_matches_is_a_no_op(monkeypatch) -> None:
    commands = _install(monkeypatch, listing=SERVICE_LISTING[2:])
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report)

    assert commands == []
    assert report.outcomes == []


def test_dry_run_records_simulation(monkeypatch) -> None:
    _install(monkeypatch)
    report = RunReport()

    services.scrub_services(constants.CYGWIN, report, dry_run=True)

    assert {outcome.status for outcome in report.outcomes} == {DRY_RUN}
