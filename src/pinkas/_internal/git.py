"""Git command execution and input validation.

Every git invocation in pinkas goes through run_git(): arguments are
always passed as a list (never through a shell), and refs / object ids
that reach the command line are validated first.
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from pinkas.errors import GitCommandError

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30  # seconds

_SHELL_SPECIALS = re.compile(r'[;&|`$(){}\[\]<>!\\"\s]')
_HEX = re.compile(r"^[0-9a-f]+$")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class GitResult:
    """Outcome of one git command."""
    args: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def out(self) -> str:
        return self.stdout.strip()


def run_git(
    args: Sequence[str],
    cwd: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
    input: Optional[str] = None,
    check: bool = True,
    timeout: float = GIT_TIMEOUT,
) -> GitResult:
    """Run git with list arguments.

    Args:
        args: Arguments after "git"
        cwd: Working directory (defaults to the process cwd)
        env: Extra environment variables layered over os.environ
        input: Text passed on stdin
        check: Raise GitCommandError on a non-zero exit
        timeout: Seconds before the command is abandoned

    Returns:
        GitResult (also for failures when check=False)

    Raises:
        GitCommandError: If check=True and git fails, and always when git
            cannot be started or times out
    """
    if not args:
        raise ValueError("git arguments must be a non-empty sequence")

    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    logger.debug("git %s (cwd=%s)", " ".join(args), cwd or ".")
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
            input=input,
            stdin=None if input is not None else subprocess.DEVNULL,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise GitCommandError(args, 127, stderr=f"cannot start git (missing executable or cwd): {e}")
    except NotADirectoryError as e:
        raise GitCommandError(args, 128, stderr=str(e))
    except subprocess.TimeoutExpired:
        raise GitCommandError(args, -1, stderr=f"timed out after {timeout}s")

    result = GitResult(
        args=list(args),
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=(proc.stderr or "").strip(),
    )
    if check and not result.ok:
        raise GitCommandError(args, result.returncode, result.stdout.strip(), result.stderr)
    return result


def validate_git_ref(ref: str) -> None:
    """Reject refs that could be mistaken for options or break the command line."""
    if not isinstance(ref, str) or not ref:
        raise ValueError("Git ref must be a non-empty string")
    if ref.startswith("-"):
        raise ValueError(f"Invalid git ref: starts with dash: {ref}")
    if _SHELL_SPECIALS.search(ref):
        raise ValueError(f"Invalid git ref: contains whitespace or shell special characters: {ref!r}")
    if ".." in ref or "//" in ref or ref.endswith("/") or ref.endswith(".lock"):
        raise ValueError(f"Invalid git ref: {ref}")
    if "\0" in ref:
        raise ValueError("Invalid git ref: contains null byte")


def validate_notes_ref(ref: str) -> None:
    """Notes refs must be full refs under refs/notes/."""
    validate_git_ref(ref)
    if not ref.startswith("refs/notes/"):
        raise ValueError(f"Invalid notes ref: must live under refs/notes/: {ref}")


def validate_object_id(object_id: str) -> None:
    """Full or abbreviated hexadecimal object id (SHA-1 or SHA-256)."""
    if not isinstance(object_id, str) or not object_id:
        raise ValueError("Object id must be a non-empty string")
    if not _HEX.match(object_id):
        raise ValueError(f"Invalid object id: must be lowercase hexadecimal: {object_id}")
    if len(object_id) < 4 or len(object_id) > 64:
        raise ValueError(f"Invalid object id: invalid length: {object_id}")


def resolve_ref(ref: str, cwd: Optional[PathLike] = None) -> Optional[str]:
    """Object id a ref points to, or None if it does not exist."""
    validate_git_ref(ref)
    result = run_git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=cwd, check=False)
    return result.out if result.ok and result.out else None


def current_branch(cwd: Optional[PathLike] = None) -> str:
    """Checked-out branch name, "detached" for a detached HEAD, "unknown" on error.

    symbolic-ref works in repositories without commits, unlike rev-parse.
    """
    try:
        result = run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=cwd, check=False)
    except GitCommandError:
        return "unknown"
    if result.ok and result.out:
        return result.out
    # --quiet: exit 1 means HEAD is not symbolic; anything else is an error
    return "detached" if result.returncode == 1 else "unknown"


def head_commit(cwd: Optional[PathLike] = None) -> str:
    """HEAD commit id, or "none" when there is no commit yet."""
    try:
        result = run_git(["rev-parse", "--verify", "--quiet", "HEAD^{commit}"], cwd=cwd, check=False)
    except GitCommandError:
        return "none"
    return result.out if result.ok and result.out else "none"
