"""!
@brief Per-run outcome report.
@details Every scrubber records one :class:`Outcome` per decision it makes
(removed, skipped by a safety rule, failed, or simulated) instead of aborting.
The report is what the CLI summarises at the end of a run and what
``--report`` serialises to JSON.
"""
from __future__ import annotations

import json
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List

from . import logging_ext

DONE = "done"
SKIPPED = "skipped"
FAILED = "failed"
DRY_RUN = "dry-run"

STATUSES = (DONE, SKIPPED, FAILED, DRY_RUN)


@dataclass(frozen=True)
class Outcome:
    """!
    @brief Result of one attempted (or deliberately skipped) action.
    @details ``warning`` marks skips an operator should look at, such as a
    candidate rejected by the drive-root guard, as opposed to routine skips
    like a key that does not exist.
    """

    scrubber: str
    action: str
    target: str
    status: str
    detail: str = ""
    warning: bool = False


@dataclass
class RunReport:
    outcomes: List[Outcome] = field(default_factory=list)

    def record(
        self,
        scrubber: str,
        action: str,
        target: object,
        status: str,
        detail: str = "",
        *,
        warning: bool = False,
    ) -> Outcome:
        """!
        @brief Append an outcome and mirror it to the machine log.
        """

        if status not in STATUSES:
            raise ValueError(f"Unknown outcome status: {status}")
        outcome = Outcome(
            scrubber=scrubber,
            action=action,
            target=str(target),
            status=status,
            detail=detail,
            warning=warning or status == FAILED,
        )
        self.outcomes.append(outcome)
        event = f"{scrubber}_{action}"
        logging_ext.get_machine_logger().info(
            event,
            extra={"event": event, "outcome": asdict(outcome)},
        )
        return outcome

    def done(self, scrubber: str, action: str, target: object, detail: str = "") -> Outcome:
        return self.record(scrubber, action, target, DONE, detail)

    def skipped(
        self, scrubber: str, action: str, target: object, detail: str = "", *, warning: bool = False
    ) -> Outcome:
        return self.record(scrubber, action, target, SKIPPED, detail, warning=warning)

    def failed(self, scrubber: str, action: str, target: object, detail: str = "") -> Outcome:
        return self.record(scrubber, action, target, FAILED, detail)

    def simulated(self, scrubber: str, action: str, target: object, detail: str = "") -> Outcome:
        return self.record(scrubber, action, target, DRY_RUN, detail)

    def by_scrubber(self, scrubber: str) -> List[Outcome]:
        return [outcome for outcome in self.outcomes if outcome.scrubber == scrubber]

    def targets(self, scrubber: str, action: str, status: str = DONE) -> List[str]:
        """!
        @brief List targets of ``scrubber``/``action`` outcomes with ``status``.
        """

        return [
            outcome.target
            for outcome in self.outcomes
            if outcome.scrubber == scrubber and outcome.action == action and outcome.status == status
        ]

    def summary_counts(self) -> Dict[str, int]:
        counts = Counter(outcome.status for outcome in self.outcomes)
        return {status: counts.get(status, 0) for status in STATUSES}

    def warnings(self) -> List[Outcome]:
        return [outcome for outcome in self.outcomes if outcome.warning]

    @property
    def reboot_recommended(self) -> bool:
        """!
        @brief ``True`` when something failed; locked files and services
        usually clear after a reboot and a second run.
        """

        return any(outcome.status == FAILED for outcome in self.outcomes)

    def to_dict(self) -> Dict[str, object]:
        return {
            "counts": self.summary_counts(),
            "reboot_recommended": self.reboot_recommended,
            "outcomes": [asdict(outcome) for outcome in self.outcomes],
        }

    def write_json(self, destination: Path) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return destination


__all__ = [
    "DONE",
    "DRY_RUN",
    "FAILED",
    "Outcome",
    "RunReport",
    "SKIPPED",
    "STATUSES",
]
