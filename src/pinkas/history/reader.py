"""Reading validation history."""

from typing import List, Optional

from pinkas._internal.git import PathLike
from pinkas._internal.notes import NotesStore
from pinkas.config import HistoryConfig
from pinkas.contracts import FingerprintLike, TreeFingerprint, UNKNOWN_HASH
from pinkas.kernel.flakiness import most_recent
from pinkas.kernel.run_record import HistoryLog, RunRecord


def _store(config: Optional[HistoryConfig], cwd: Optional[PathLike]) -> NotesStore:
    return NotesStore.from_config(config or HistoryConfig(), cwd=cwd)


def read_history(
    fingerprint: FingerprintLike,
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> Optional[HistoryLog]:
    """History log of a fingerprint, or None when there is no usable history.

    Corrupt notes and environment problems also yield None; they never raise.
    """
    fingerprint = fingerprint.hash if isinstance(fingerprint, TreeFingerprint) else str(fingerprint)
    if fingerprint == UNKNOWN_HASH:
        return None
    config = config or HistoryConfig()
    try:
        return _store(config, cwd).read(config.notes.category, fingerprint)
    except ValueError:
        return None  # not an object id


def list_history_fingerprints(
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> List[str]:
    config = config or HistoryConfig()
    return _store(config, cwd).list_fingerprints(config.notes.category)


def get_all_history(
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> List[HistoryLog]:
    """Every readable log in the configured category."""
    config = config or HistoryConfig()
    store = _store(config, cwd)
    logs = []
    for fingerprint in store.list_fingerprints(config.notes.category):
        log = store.read(config.notes.category, fingerprint)
        if log is not None:
            logs.append(log)
    return logs


def has_history(
    fingerprint: FingerprintLike,
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> bool:
    return read_history(fingerprint, config, cwd) is not None


def find_cached_validation(
    fingerprint: FingerprintLike,
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> Optional[RunRecord]:
    """Most recent recorded run for a tree: the cache hit, if any."""
    return most_recent(read_history(fingerprint, config, cwd))
