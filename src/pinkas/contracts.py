"""Public result models for pinkas."""

from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from pinkas.codes import RecordCode

UNKNOWN_HASH = "unknown"


class TreeFingerprint(BaseModel):
    """Content hash of a working tree, or the "caching not applicable" sentinel.

    In a repository with checked-out submodules, hash names a blob that
    combines the parent tree with every submodule fingerprint; tree_hash
    and submodule_hashes keep the parts.
    """
    hash: str  # object id notes attach to, or "unknown"
    tree_hash: Optional[str] = None
    submodule_hashes: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def is_known(self) -> bool:
        return self.hash != UNKNOWN_HASH

    def __hash__(self) -> int:
        return hash(self.hash)

    def __str__(self) -> str:
        return self.hash


NOT_APPLICABLE = TreeFingerprint(hash=UNKNOWN_HASH)

FingerprintLike = Union[str, TreeFingerprint]


class StabilityResult(BaseModel):
    """Fingerprints bracketing an operation."""
    stable: bool
    fingerprint_before: str
    fingerprint_after: str


class RecordResult(BaseModel):
    """Outcome of appending a record to a log."""
    recorded: bool
    fingerprint: str
    code: RecordCode
    reason: Optional[str] = None
    attempts: int = 0  # conditional writes tried


class FlakyStep(BaseModel):
    """A step that failed in one run and passed in a later run on the same tree."""
    name: str
    failed_timestamp: str
    passed_timestamp: str


class FlakinessReport(BaseModel):
    """Disagreement among the records of one log."""
    flaky: bool
    passed_count: int
    failed_count: int
    flaky_steps: List[FlakyStep] = Field(default_factory=list)


class HealthReport(BaseModel):
    """Aggregate size/age of a notes category. Advisory only."""
    total_logs: int
    total_size_bytes: int
    old_log_count: int
    should_warn: bool
    warning_message: Optional[str] = None


class PruneResult(BaseModel):
    """Result of one pruning pass (dry run or not)."""
    notes_pruned: int
    runs_pruned: int
    notes_remaining: int
    pruned_fingerprints: List[str]  # in enumeration order
    failed_fingerprints: List[str] = Field(default_factory=list)  # deletion attempted and failed
