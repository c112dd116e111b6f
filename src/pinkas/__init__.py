"""pinkas: validation cache and run history stored in git notes."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("pinkas")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from pinkas.api import (
    compute_fingerprint,
    check_stability,
    record_run,
    read_history,
    check_health,
    prune_by_age,
    most_recent,
    detect_flakiness,
)
from pinkas.contracts import NOT_APPLICABLE, TreeFingerprint
from pinkas.codes import RecordCode
from pinkas.errors import FingerprintError
from pinkas.config import HistoryConfig
from pinkas.kernel.run_record import HistoryLog, RunRecord, ValidationResult

__all__ = [
    "__version__",
    "compute_fingerprint",
    "check_stability",
    "record_run",
    "read_history",
    "check_health",
    "prune_by_age",
    "most_recent",
    "detect_flakiness",
    "NOT_APPLICABLE",
    "TreeFingerprint",
    "FingerprintError",
    "RecordCode",
    "HistoryConfig",
    "HistoryLog",
    "RunRecord",
    "ValidationResult",
]
