"""Reason code constants for recording outcomes.

These constants keep callers from matching on free-form reason strings
when deciding how to report a recording attempt.
"""

from enum import Enum


class RecordCode(str, Enum):
    """Outcome codes for append / record operations."""

    # Success
    RECORDED = "RECORDED"

    # Nothing to record (not failures)
    NOT_APPLICABLE = "NOT_APPLICABLE"
    DISABLED = "DISABLED"

    # Recording lost; the validation result itself is still valid
    APPEND_CONFLICT = "APPEND_CONFLICT"
    LOG_CORRUPT = "LOG_CORRUPT"
    GIT_ERROR = "GIT_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
