"""Performance budgets for the gated perf tests.

Each budget is a mean wall-clock limit in milliseconds. Slow CI machines
can raise one through PINKAS_MAX_<NAME>_MS.
"""

from __future__ import annotations

import os

_DEFAULT_BUDGETS_MS = {
    "FINGERPRINT": 1500.0,
    "APPEND": 1000.0,
    "READ": 300.0,
}


def budget_ms(name: str) -> float:
    default = _DEFAULT_BUDGETS_MS[name]
    try:
        value = float(os.getenv(f"PINKAS_MAX_{name}_MS", ""))
    except ValueError:
        return default
    return value if value > 0 else default


MAX_FINGERPRINT_MS = budget_ms("FINGERPRINT")
MAX_APPEND_MS = budget_ms("APPEND")
MAX_READ_MS = budget_ms("READ")
