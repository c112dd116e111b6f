"""History health check: how large and how stale the store has become."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pinkas._internal.git import PathLike
from pinkas._internal.notes import NotesStore
from pinkas.config import HistoryConfig
from pinkas.contracts import HealthReport
from pinkas.kernel.run_record import newest_timestamp


def _format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KiB"
    return f"{size_bytes / (1024 * 1024):.1f} MiB"


def check_health(
    config: Optional[HistoryConfig] = None,
    now: Optional[datetime] = None,
    cwd: Optional[PathLike] = None,
) -> HealthReport:
    """Summarize the configured history category. Read-only.

    A log counts as old when its newest record is older than
    retention.warn_after_days, i.e. exactly the logs a prune with that
    age would remove.
    """
    config = config or HistoryConfig()
    retention = config.retention
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention.warn_after_days)

    store = NotesStore.from_config(config, cwd=cwd)
    category = config.notes.category
    entries = store.list_notes(category)

    total_size = sum(entry.size_bytes for entry in entries)
    old_count = 0
    for entry in entries:
        log = store.read(category, entry.fingerprint)
        if log is None:
            continue
        newest = newest_timestamp(log.runs)
        if newest is not None and newest < cutoff:
            old_count += 1

    warn_count = len(entries) > retention.warn_after_count
    warn_size = total_size > retention.warn_after_bytes
    warn_age = old_count > 0
    should_warn = warn_count or warn_size or warn_age

    warning_message = None
    if should_warn:
        lines = []
        if warn_count or warn_size:
            lines.append(
                f"Validation history has grown large "
                f"({len(entries)} tree hashes, {_format_size(total_size)})"
            )
        if warn_age:
            lines.append(f"Found {old_count} tree hashes with no run in the last {retention.warn_after_days} days")
        lines.append(f"Consider pruning history older than {retention.warn_after_days} days")
        warning_message = "\n".join(lines)

    return HealthReport(
        total_logs=len(entries),
        total_size_bytes=total_size,
        old_log_count=old_count,
        should_warn=should_warn,
        warning_message=warning_message,
    )
