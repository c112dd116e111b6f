"""Public API for pinkas.

High-level functions that the validation CLI calls. Reading and recording
degrade to None or a non-recorded result instead of raising for git or
storage problems, so validation keeps working with caching disabled.

compute_fingerprint() and check_stability() return the NOT_APPLICABLE
sentinel outside a git work tree, but raise FingerprintError when git
fails inside one. Pruning raises ValueError for a negative age; per-log
deletion failures are reported in PruneResult.failed_fingerprints.

Typical flow::

    before = compute_fingerprint()
    outcome = runner.run()
    if before.is_known and check_stability(before).stable:
        record_run(before, outcome)
"""

from pinkas._internal.fingerprint import compute_fingerprint
from pinkas.config import HistoryConfig, load_config
from pinkas.contracts import (
    NOT_APPLICABLE,
    FlakinessReport,
    HealthReport,
    PruneResult,
    RecordResult,
    StabilityResult,
    TreeFingerprint,
)
from pinkas.errors import FingerprintError
from pinkas.history.health import check_health
from pinkas.history.pruner import prune_all_history, prune_by_age, prune_run_cache
from pinkas.history.reader import (
    find_cached_validation,
    get_all_history,
    list_history_fingerprints,
    read_history,
)
from pinkas.history.recorder import check_stability, record_run
from pinkas.history.run_cache import lookup_run_cache, record_run_cache
from pinkas.kernel.flakiness import detect_flakiness, most_recent
from pinkas.kernel.run_record import (
    HistoryLog,
    PhaseResult,
    RunCacheEntry,
    RunRecord,
    StepResult,
    ValidationResult,
)

__all__ = [
    "compute_fingerprint",
    "check_stability",
    "record_run",
    "read_history",
    "check_health",
    "prune_by_age",
    "prune_all_history",
    "prune_run_cache",
    "most_recent",
    "detect_flakiness",
    "find_cached_validation",
    "get_all_history",
    "list_history_fingerprints",
    "record_run_cache",
    "lookup_run_cache",
    "load_config",
    "HistoryConfig",
    "TreeFingerprint",
    "NOT_APPLICABLE",
    "FingerprintError",
    "StabilityResult",
    "RecordResult",
    "FlakinessReport",
    "HealthReport",
    "PruneResult",
    "HistoryLog",
    "RunRecord",
    "RunCacheEntry",
    "ValidationResult",
    "PhaseResult",
    "StepResult",
]
