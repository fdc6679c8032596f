"""!
@brief Environment scrubber tests.
@details Uses an in-memory stand-in for the registry-backed environment blocks
so writes and deletions can be counted exactly.
"""

from __future__ import annotations

import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cygwin_janitor import constants, environment  # noqa: E402
from cygwin_janitor.report import DONE, DRY_RUN, FAILED, RunReport  # noqa: E402

REG_EXPAND_SZ = 2


class _FakeEnvironmentStore:
    """!
    @brief Registry double keyed by ``(root, subkey, value_name)``.
    """

    def __init__(self, values: dict | None = None) -> None:
        self.values: dict = dict(values or {})
        self.writes: list[tuple] = []
        self.deletes: list[tuple] = []
        self.fail_writes = False

    def get_value_and_type(self, root, subkey, name):
        return self.values.get((root, subkey, name))

    def set_value(self, root, subkey, name, value, value_type):
        if self.fail_writes:
            raise PermissionError(5, "Access is denied")
        self.writes.append((root, subkey, name, value, value_type))
        self.values[(root, subkey, name)] = (value, value_type)

    def delete_value(self, root, subkey, name):
        self.deletes.append((root, subkey, name))
        del self.values[(root, subkey, name)]


def _install(monkeypatch, store: _FakeEnvironmentStore) -> list[int]:
    broadcasts: list[int] = []
    monkeypatch.setattr(environment.registry_tools, "get_value_and_type", store.get_value_and_type)
    monkeypatch.setattr(environment.registry_tools, "set_value", store.set_value)
    monkeypatch.setattr(environment.registry_tools, "delete_value", store.delete_value)
    monkeypatch.setattr(environment, "broadcast_environment_change", lambda: broadcasts.append(1) or True)
    return broadcasts


MACHINE = constants.ENVIRONMENT_SCOPES[constants.MACHINE_SCOPE]
USER = constants.ENVIRONMENT_SCOPES[constants.USER_SCOPE]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (r"C:\A;C:\B-cygwin-tools;C:\C", r"C:\A;C:\C"),
        (r"C:\A;C:\C", r"C:\A;C:\C"),
        (r"C:\CYGWIN64\bin;;C:\Windows;", r"C:\Windows"),
        (r"C:\cygwin\bin", ""),
        (r"%SystemRoot%\system32;C:\A;C:\A", r"%SystemRoot%\system32;C:\A;C:\A"),
    ],
)
def test_filter_path_value(value: str, expected: str) -> None:
    assert environment.filter_path_value(value, constants.CYGWIN) == expected


def test_path_with_signature_is_written_once(monkeypatch) -> None:
    """!
    @brief ``[A, B-cygwin-tools, C]`` becomes ``[A, C]`` with exactly one write.
    """

    store = _FakeEnvironmentStore({(*MACHINE, "Path"): (r"C:\A;C:\B-cygwin-tools;C:\C", REG_EXPAND_SZ)})
    _install(monkeypatch, store)
    report = RunReport()

    changed = environment.scrub_scope(constants.MACHINE_SCOPE, constants.CYGWIN, report)

    assert changed is True
    assert store.writes == [(*MACHINE, "Path", r"C:\A;C:\C", REG_EXPAND_SZ)]
    assert report.outcomes[0].status == DONE


def test_path_without_signature_is_not_written(monkeypatch) -> None:
    store = _FakeEnvironmentStore({(*USER, "Path"): (r"C:\A;C:\C", REG_EXPAND_SZ)})
    _install(monkeypatch, store)

    changed = environment.scrub_scope(constants.USER_SCOPE, constants.CYGWIN, RunReport())

    assert changed is False
    assert store.writes == []


@pytest.mark.parametrize("value", [None, "", "   "])
def test_absent_or_blank_path_is_a_no_op(monkeypatch, value) -> None:
    values = {} if value is None else {(*USER, "Path"): (value, REG_EXPAND_SZ)}
    store = _FakeEnvironmentStore(values)
    _install(monkeypatch, store)
    report = RunReport()

    assert environment.scrub_scope(constants.USER_SCOPE, constants.CYGWIN, report) is False
    assert store.writes == []
    assert report.outcomes == []


def test_product_variable_is_deleted(monkeypatch) -> None:
    store = _FakeEnvironmentStore({(*USER, "CYGWIN"): ("winsymlinks:nativestrict", 1)})
    _install(monkeypatch, store)
    report = RunReport()

    assert environment.scrub_scope(constants.USER_SCOPE, constants.CYGWIN, report) is True
    assert store.deletes == [(*USER, "CYGWIN")]
    assert report.targets("environment", "unset") == ["user:CYGWIN"]


def test_dry_run_changes_nothing(monkeypatch) -> None:
    store = _FakeEnvironmentStore(
        {
            (*MACHINE, "Path"): (r"C:\cygwin64\bin;C:\Windows", REG_EXPAND_SZ),
            (*MACHINE, "CYGWIN"): ("nodosfilewarning", 1),
        }
    )
    broadcasts = _install(monkeypatch, store)
    report = RunReport()

    environment.scrub_environment(constants.CYGWIN, report, dry_run=True)

    assert store.writes == []
    assert store.deletes == []
    assert broadcasts == []
    assert [outcome.status for outcome in report.outcomes] == [DRY_RUN, DRY_RUN]


def test_both_scopes_cleaned_and_broadcast_once(monkeypatch) -> None:
    store = _FakeEnvironmentStore(
        {
            (*MACHINE, "Path"): (r"C:\cygwin64\bin;C:\Windows", REG_EXPAND_SZ),
            (*USER, "Path"): (r"C:\Users\a\bin;D:\Cygwin\usr\local\bin", REG_EXPAND_SZ),
            (*USER, "CYGWIN"): ("nodosfilewarning", 1),
        }
    )
    broadcasts = _install(monkeypatch, store)

    environment.scrub_environment(constants.CYGWIN, RunReport())

    assert store.values[(*MACHINE, "Path")][0] == r"C:\Windows"
    assert store.values[(*USER, "Path")][0] == r"C:\Users\a\bin"
    assert (*USER, "CYGWIN") not in store.values
    assert broadcasts == [1]


def test_write_failure_is_recorded_and_other_scope_continues(monkeypatch) -> None:
    store = _FakeEnvironmentStore(
        {
            (*MACHINE, "Path"): (r"C:\cygwin64\bin;C:\Windows", REG_EXPAND_SZ),
            (*USER, "CYGWIN"): ("nodosfilewarning", 1),
        }
    )
    store.fail_writes = True
    _install(monkeypatch, store)
    report = RunReport()

    environment.scrub_environment(constants.CYGWIN, report)

    assert [outcome.status for outcome in report.outcomes] == [FAILED, DONE]
    assert store.deletes == [(*USER, "CYGWIN")]


def test_second_run_is_idempotent(monkeypatch) -> None:
    store = _FakeEnvironmentStore({(*MACHINE, "Path"): (r"C:\cygwin\bin;C:\Windows", REG_EXPAND_SZ)})
    broadcasts = _install(monkeypatch, store)

    environment.scrub_environment(constants.CYGWIN, RunReport())
    second = RunReport()
    environment.scrub_environment(constants.CYGWIN, second)

    assert len(store.writes) == 1
    assert second.outcomes == []
    assert broadcasts == [1]
