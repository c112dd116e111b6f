"""Cache key encoding for run-command results.

Keys must be usable as a git ref path component, so the normalized
command is hashed rather than escaped.
"""

import hashlib
import re

# Presence of any of these means internal spacing may be significant
SHELL_METACHARACTERS = ('"', "'", '`', '\\', '|', '>', '<', '&', ';', '$')

RUN_CATEGORY_PREFIX = "run"


def is_complex_command(command: str) -> bool:
    return any(char in command for char in SHELL_METACHARACTERS)


def normalize_command(command: str) -> str:
    """Trim; collapse whitespace runs unless the command uses shell syntax."""
    trimmed = command.strip()
    if is_complex_command(trimmed):
        return trimmed
    return re.sub(r"\s+", " ", trimmed)


def encode_run_cache_key(command: str, workdir: str = "") -> str:
    """Deterministic 16-hex-char key for a command + workdir pair.

    Returns "" for an empty command.
    """
    normalized = normalize_command(command)
    if not normalized:
        return ""
    key_input = f"{normalized}__{workdir.strip()}"
    return hashlib.sha256(key_input.encode("utf-8")).hexdigest()[:16]


def run_cache_category(command: str, workdir: str = "") -> str:
    """Notes category holding cached runs of one command."""
    key = encode_run_cache_key(command, workdir)
    if not key:
        raise ValueError("Cannot build a run cache category for an empty command")
    return f"{RUN_CATEGORY_PREFIX}/{key}"
