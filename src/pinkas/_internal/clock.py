"""Clock and id sources for new records. The kernel never reads the clock."""

import uuid
from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(timezone.utc).isoformat()


def generate_run_id() -> str:
    """Run ids stay unique across processes writing in the same millisecond."""
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"run-{millis}-{uuid.uuid4().hex[:8]}"
