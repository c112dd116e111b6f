"""History pruning. Logs are removed whole or not at all."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pinkas._internal.git import PathLike
from pinkas._internal.notes import NotesStore
from pinkas.config import HistoryConfig
from pinkas.contracts import PruneResult
from pinkas.errors import LogCorruptError, PinkasError
from pinkas.kernel.cache_key import RUN_CATEGORY_PREFIX
from pinkas.kernel.run_record import RunCacheEntry, newest_timestamp

logger = logging.getLogger(__name__)


def _older_than(cutoff: datetime):
    """Delete predicate: the newest readable record predates cutoff."""
    def check(runs) -> bool:
        newest = newest_timestamp(runs)
        return newest is not None and newest < cutoff
    return check


def prune_by_age(
    max_age_days: float,
    config: Optional[HistoryConfig] = None,
    dry_run: bool = False,
    now: Optional[datetime] = None,
    cwd: Optional[PathLike] = None,
) -> PruneResult:
    """Remove every log whose newest record is older than max_age_days.

    A log with one recent record is kept in full, however old its other
    records are. The age is checked again on the state actually deleted,
    so a run recorded while the pass is underway keeps its log. Logs
    without readable records are left alone. A failed deletion is
    reported in failed_fingerprints and the pass continues.

    Args:
        max_age_days: Age threshold in days
        config: History configuration (selects the category)
        dry_run: Report what would be pruned without deleting
        now: Reference time (defaults to the current UTC time)
        cwd: Any directory inside the repository

    Returns:
        PruneResult describing the (would-be) affected logs
    """
    if max_age_days < 0:
        raise ValueError(f"max_age_days must not be negative, got {max_age_days}")
    config = config or HistoryConfig()
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=max_age_days)
    is_old = _older_than(cutoff)

    store = NotesStore.from_config(config, cwd=cwd)
    category = config.notes.category
    fingerprints = store.list_fingerprints(category)

    notes_pruned = 0
    runs_pruned = 0
    pruned = []
    failed = []
    for fingerprint in fingerprints:
        log = store.read(category, fingerprint)
        if log is None or not is_old(log.runs):
            continue

        run_count = len(log.runs)
        if not dry_run:
            seen = {}

            def remove_if_old(runs) -> bool:
                seen["runs"] = len(runs)
                return is_old(runs)

            try:
                removed = store.delete(category, fingerprint, should_delete=remove_if_old)
            except (PinkasError, LogCorruptError) as e:
                logger.warning("Failed to prune history for %s: %s", fingerprint, e)
                failed.append(fingerprint)
                continue
            if not removed:
                logger.debug("Kept history for %s: it changed since it was read", fingerprint)
                continue
            run_count = seen.get("runs", run_count)

        notes_pruned += 1
        runs_pruned += run_count
        pruned.append(fingerprint)

    return PruneResult(
        notes_pruned=notes_pruned,
        runs_pruned=runs_pruned,
        notes_remaining=len(fingerprints) - notes_pruned,
        pruned_fingerprints=pruned,
        failed_fingerprints=failed,
    )


def prune_all_history(
    config: Optional[HistoryConfig] = None,
    dry_run: bool = False,
    cwd: Optional[PathLike] = None,
) -> PruneResult:
    """Remove every log in the configured category, readable or not."""
    config = config or HistoryConfig()
    store = NotesStore.from_config(config, cwd=cwd)
    category = config.notes.category
    fingerprints = store.list_fingerprints(category)

    notes_pruned = 0
    runs_pruned = 0
    pruned = []
    failed = []
    for fingerprint in fingerprints:
        log = store.read(category, fingerprint)
        if not dry_run:
            try:
                store.delete(category, fingerprint)
            except PinkasError as e:
                logger.warning("Failed to prune history for %s: %s", fingerprint, e)
                failed.append(fingerprint)
                continue
        notes_pruned += 1
        runs_pruned += len(log.runs) if log is not None else 0
        pruned.append(fingerprint)

    return PruneResult(
        notes_pruned=notes_pruned,
        runs_pruned=runs_pruned,
        notes_remaining=len(fingerprints) - notes_pruned,
        pruned_fingerprints=pruned,
        failed_fingerprints=failed,
    )


def prune_run_cache(
    config: Optional[HistoryConfig] = None,
    dry_run: bool = False,
    cwd: Optional[PathLike] = None,
) -> PruneResult:
    """Drop every run-cache category. Each cached entry counts as one run."""
    config = config or HistoryConfig()
    store = NotesStore.from_config(config, cwd=cwd)

    notes_pruned = 0
    runs_pruned = 0
    fingerprints = set()
    failed = []
    notes_remaining = 0
    for category in store.list_categories(f"{RUN_CATEGORY_PREFIX}/"):
        entries = store.list_fingerprints(category)
        entry_count = sum(
            len(store.read_records(category, fingerprint, RunCacheEntry) or [])
            for fingerprint in entries
        )
        if not dry_run and not store.delete_category(category):
            logger.warning("Failed to prune run cache %s", category)
            failed.extend(entries)
            notes_remaining += len(entries)
            continue
        notes_pruned += len(entries)
        runs_pruned += entry_count
        fingerprints.update(entries)

    return PruneResult(
        notes_pruned=notes_pruned,
        runs_pruned=runs_pruned,
        notes_remaining=notes_remaining,
        pruned_fingerprints=sorted(fingerprints),
        failed_fingerprints=sorted(set(failed)),
    )
