"""Recording validation runs and guarding against mid-run tree changes."""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from pinkas._internal.clock import generate_run_id, utc_now_iso
from pinkas._internal.fingerprint import compute_fingerprint, has_working_tree_changes
from pinkas._internal.git import PathLike, current_branch, head_commit
from pinkas._internal.notes import NotesStore
from pinkas.codes import RecordCode
from pinkas.config import HistoryConfig
from pinkas.contracts import FingerprintLike, RecordResult, StabilityResult, TreeFingerprint, UNKNOWN_HASH
from pinkas.kernel.run_record import (
    RunRecord,
    ValidationResult,
    outcome_duration_ms,
)
from pinkas.kernel.truncate import truncate_validation_output

logger = logging.getLogger(__name__)

OutcomeLike = Union[ValidationResult, Dict[str, Any]]


def _hash_of(fingerprint: FingerprintLike) -> str:
    return fingerprint.hash if isinstance(fingerprint, TreeFingerprint) else str(fingerprint)


def check_stability(before: FingerprintLike, cwd: Optional[PathLike] = None) -> StabilityResult:
    """Recompute the fingerprint and compare it with the one taken before an operation.

    stable=False means the tree changed while the operation ran (or no
    fingerprint is available), so its result must not be recorded.
    """
    before_hash = _hash_of(before)
    after = compute_fingerprint(cwd)
    stable = before_hash != UNKNOWN_HASH and after.is_known and before_hash == after.hash
    if not stable and after.is_known and before_hash != UNKNOWN_HASH:
        logger.debug("Working tree changed during validation: %s -> %s", before_hash, after.hash)
    return StabilityResult(
        stable=stable,
        fingerprint_before=before_hash,
        fingerprint_after=after.hash,
    )


def build_run_record(
    fingerprint: FingerprintLike,
    outcome: ValidationResult,
    max_output_bytes: int = 10000,
    cwd: Optional[PathLike] = None,
) -> RunRecord:
    """Assemble a RunRecord for an outcome, capturing branch and HEAD state now."""
    return RunRecord(
        id=generate_run_id(),
        timestamp=utc_now_iso(),
        duration_ms=outcome_duration_ms(outcome),
        passed=outcome.passed,
        branch=current_branch(cwd),
        head_commit=head_commit(cwd),
        uncommitted_changes=has_working_tree_changes(fingerprint, cwd),
        result=truncate_validation_output(outcome, max_output_bytes),
    )


def record_run(
    before: FingerprintLike,
    outcome: OutcomeLike,
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> RecordResult:
    """Append a validation outcome to the history of the tree it ran against.

    The caller must only call this after check_stability() reported a
    stable tree; it is not re-checked here. Every call adds a new record,
    so repeated runs against one tree are all retained.

    Args:
        before: Fingerprint taken before validation started
        outcome: Runner result (model or plain dict)
        config: History configuration (defaults apply when omitted)
        cwd: Any directory inside the repository

    Returns:
        RecordResult; never raises for git or storage problems
    """
    config = config or HistoryConfig()
    fingerprint = _hash_of(before)

    if not config.enabled:
        return RecordResult(recorded=False, fingerprint=fingerprint, code=RecordCode.DISABLED,
                            reason="history recording disabled")
    if fingerprint == UNKNOWN_HASH:
        return RecordResult(recorded=False, fingerprint=fingerprint, code=RecordCode.NOT_APPLICABLE,
                            reason="not inside a git work tree")

    if not isinstance(outcome, ValidationResult):
        try:
            outcome = ValidationResult.model_validate(outcome)
        except ValidationError as e:
            return RecordResult(recorded=False, fingerprint=fingerprint, code=RecordCode.INVALID_INPUT,
                                reason=f"invalid validation result: {e}")

    record = build_run_record(before, outcome, config.notes.max_output_bytes, cwd)
    store = NotesStore.from_config(config, cwd=cwd)
    result = store.append(
        config.notes.category,
        fingerprint,
        record,
        max_records=config.notes.max_runs_per_log,
    )
    if result.recorded:
        logger.debug("Recorded %s for %s (%s)", record.id, fingerprint, "passed" if record.passed else "failed")
    return result
