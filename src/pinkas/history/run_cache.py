"""Run-command cache: successful ad-hoc command results keyed by tree.

Each command + workdir pair gets its own category (run/<key>), so cached
runs share the notes store and its concurrency handling with validation
history without ever colliding on a fingerprint.
"""

import logging
from typing import Optional

from pinkas._internal.git import PathLike
from pinkas._internal.notes import NotesStore
from pinkas.codes import RecordCode
from pinkas.config import HistoryConfig
from pinkas.contracts import RecordResult, UNKNOWN_HASH
from pinkas.kernel.cache_key import run_cache_category
from pinkas.kernel.run_record import RunCacheEntry

logger = logging.getLogger(__name__)

MAX_ENTRIES_PER_TREE = 5


def record_run_cache(
    entry: RunCacheEntry,
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> RecordResult:
    """Cache a command result for its tree. Failed runs are never cached."""
    config = config or HistoryConfig()
    if entry.fingerprint == UNKNOWN_HASH:
        return RecordResult(recorded=False, fingerprint=entry.fingerprint,
                            code=RecordCode.NOT_APPLICABLE, reason="not inside a git work tree")
    if entry.exit_code != 0:
        return RecordResult(recorded=False, fingerprint=entry.fingerprint,
                            code=RecordCode.NOT_APPLICABLE, reason="only successful runs are cached")
    try:
        category = run_cache_category(entry.command, entry.workdir)
    except ValueError as e:
        return RecordResult(recorded=False, fingerprint=entry.fingerprint,
                            code=RecordCode.INVALID_INPUT, reason=str(e))

    store = NotesStore.from_config(config, cwd=cwd)
    return store.append(category, entry.fingerprint, entry, max_records=MAX_ENTRIES_PER_TREE)


def lookup_run_cache(
    fingerprint: str,
    command: str,
    workdir: str = "",
    config: Optional[HistoryConfig] = None,
    cwd: Optional[PathLike] = None,
) -> Optional[RunCacheEntry]:
    """Most recent cached result of a command for a tree, or None."""
    if fingerprint == UNKNOWN_HASH:
        return None
    try:
        category = run_cache_category(command, workdir)
    except ValueError:
        return None

    store = NotesStore.from_config(config or HistoryConfig(), cwd=cwd)
    try:
        records = store.read_records(category, fingerprint, RunCacheEntry)
    except ValueError:
        return None  # not an object id
    if not records:
        return None
    return records[-1]
