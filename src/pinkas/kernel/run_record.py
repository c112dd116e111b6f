"""Run record models stored in history notes."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel, Field, ConfigDict

LOG_SCHEMA_VERSION = "1"


class StepResult(BaseModel):
    """One step of a validation phase, as reported by the runner."""
    name: str
    passed: bool
    duration_secs: float = 0.0
    output: Optional[str] = None
    failed_tests: Optional[List[str]] = None

    model_config = ConfigDict(extra="allow")


class PhaseResult(BaseModel):
    """One validation phase (a group of steps)."""
    name: str
    passed: bool
    duration_secs: float = 0.0
    steps: List[StepResult] = Field(default_factory=list)
    output: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class ValidationResult(BaseModel):
    """Structured outcome produced by the validation runner."""
    passed: bool
    timestamp: Optional[str] = None  # ISO 8601
    tree_hash: Optional[str] = None
    phases: Optional[List[PhaseResult]] = None
    failed_step: Optional[str] = None
    rerun_command: Optional[str] = None
    failed_step_output: Optional[str] = None
    failed_tests: Optional[List[str]] = None
    full_log_file: Optional[str] = None
    summary: Optional[str] = None

    model_config = ConfigDict(extra="allow")  # runner-specific fields survive the round trip


class RunRecord(BaseModel):
    """One recorded validation attempt. Never mutated after it is built."""
    id: str
    timestamp: str  # ISO 8601, UTC
    duration_ms: int
    passed: bool
    branch: str
    head_commit: str
    uncommitted_changes: bool
    result: ValidationResult

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def recorded_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


class HistoryLog(BaseModel):
    """All records appended for one (category, fingerprint) pair, oldest first."""
    schema_version: str = LOG_SCHEMA_VERSION
    fingerprint: str
    runs: List[RunRecord] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class RunCacheEntry(BaseModel):
    """Cached outcome of an ad-hoc command run against a tree."""
    fingerprint: str
    command: str
    workdir: str = ""  # relative to repository root, "" for the root
    timestamp: str
    exit_code: int
    duration_ms: int = 0
    summary: Optional[str] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    output_file: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def outcome_duration_ms(result: ValidationResult) -> int:
    """Total duration of an outcome, summed over its phases."""
    if not result.phases:
        return 0
    return int(round(sum(phase.duration_secs for phase in result.phases) * 1000))


def newest_timestamp(runs: Sequence[RunRecord]) -> Optional[datetime]:
    """Timestamp of the newest record (by time, not position)."""
    stamps = []
    for run in runs:
        try:
            stamps.append(run.recorded_at)
        except ValueError:
            continue
    return max(stamps) if stamps else None
