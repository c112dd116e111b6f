"""Most-recent lookup and flakiness detection over a history log (pure logic)."""

from typing import Dict, List, Optional

from pinkas.contracts import FlakinessReport, FlakyStep
from pinkas.kernel.run_record import HistoryLog, RunRecord


def most_recent(log: Optional[HistoryLog]) -> Optional[RunRecord]:
    """Last record by insertion order; the authoritative current status.

    A slower writer that finished later wins even if it started earlier,
    so timestamps are deliberately ignored here.
    """
    if log is None or not log.runs:
        return None
    return log.runs[-1]


def _step_outcomes(run: RunRecord) -> Dict[str, bool]:
    outcomes: Dict[str, bool] = {}
    for phase in run.result.phases or []:
        for step in phase.steps:
            outcomes[step.name] = step.passed
    return outcomes


def find_flaky_steps(log: HistoryLog) -> List[FlakyStep]:
    """Steps that failed in some run and passed in a later run of the same log.

    Each step is reported once, pairing its latest failure with the first
    pass that followed it.
    """
    last_failure: Dict[str, str] = {}
    flaky: Dict[str, FlakyStep] = {}
    for run in log.runs:
        for name, passed in _step_outcomes(run).items():
            if not passed:
                last_failure[name] = run.timestamp
            elif name in last_failure and name not in flaky:
                flaky[name] = FlakyStep(
                    name=name,
                    failed_timestamp=last_failure[name],
                    passed_timestamp=run.timestamp,
                )
    return [flaky[name] for name in sorted(flaky)]


def detect_flakiness(log: Optional[HistoryLog]) -> FlakinessReport:
    """Flag a log whose records disagree on pass/fail.

    This is a warning layered on top of most_recent(), never a replacement.
    """
    if log is None:
        return FlakinessReport(flaky=False, passed_count=0, failed_count=0)

    passed_count = sum(1 for run in log.runs if run.passed)
    failed_count = len(log.runs) - passed_count
    flaky = passed_count > 0 and failed_count > 0
    return FlakinessReport(
        flaky=flaky,
        passed_count=passed_count,
        failed_count=failed_count,
        flaky_steps=find_flaky_steps(log) if flaky else [],
    )
