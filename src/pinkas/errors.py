"""Exception types raised by pinkas.

Most public entry points degrade to sentinel values instead of raising;
these are raised by the lower layers and translated at the seams.
"""

from typing import Optional, Sequence


class PinkasError(Exception):
    """Base class for pinkas errors."""
    pass


class GitCommandError(PinkasError):
    """Raised when a git command exits non-zero (or cannot be started)."""

    def __init__(
        self,
        args: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ):
        self.git_args = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr or stdout or "git command failed"
        super().__init__(f"git {' '.join(self.git_args)} exited {returncode}: {detail}")


class FingerprintError(PinkasError):
    """Raised when a working tree fingerprint cannot be computed inside a repository."""
    pass


class LogCorruptError(ValueError):
    """Raised when a stored note body cannot be parsed as a history log."""

    def __init__(self, fingerprint: Optional[str], message: str):
        self.fingerprint = fingerprint
        super().__init__(f"Unreadable log for {fingerprint or '<unknown>'}: {message}")


class ConflictError(PinkasError):
    """Raised when a conditional notes update keeps losing to concurrent writers."""

    def __init__(self, notes_ref: str, fingerprint: str, attempts: int):
        self.notes_ref = notes_ref
        self.fingerprint = fingerprint
        self.attempts = attempts
        super().__init__(
            f"Could not update {notes_ref} for {fingerprint} after {attempts} attempts "
            f"(concurrent writers)"
        )
