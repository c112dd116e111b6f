"""Deterministic working-tree fingerprints.

The fingerprint is the git tree id of the working tree as it would be
committed right now: staged changes, unstaged modifications, deletions
and new untracked files are all included; ignored files never are.

The tree is built in a private copy of the index (GIT_INDEX_FILE), so the
user's real index is never modified, even when called from a commit hook.
write-tree is content-addressed, so the same content always yields the
same id regardless of timestamps or staging state.

A submodule is recorded in that tree only as the commit it points at, so
checked-out submodules are fingerprinted on their own and combined with
the parent tree (see compute_fingerprint).
"""

import logging
import os
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Union

from pinkas._internal.git import PathLike, run_git
from pinkas.contracts import NOT_APPLICABLE, TreeFingerprint
from pinkas.errors import FingerprintError, GitCommandError

logger = logging.getLogger(__name__)

TEMP_INDEX_PREFIX = "pinkas-index-"
STALE_INDEX_AGE_SECS = 5 * 60
_TEMP_INDEX_PATTERN = re.compile(rf"^{TEMP_INDEX_PREFIX}(\d+)-[0-9a-f]+$")
GITLINK_MODE = "160000"
COMPOSITE_HEADER = "pinkas-fingerprint 1"


def _process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    if os.name == "nt":
        # os.kill(pid, 0) terminates the process on Windows; age alone decides there
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by someone else
    except OSError:
        return False
    return True


def cleanup_stale_indexes(git_dir: Path, now: Optional[float] = None) -> int:
    """Remove temporary index files abandoned by crashed processes.

    A file is stale when it is older than STALE_INDEX_AGE_SECS and its
    owning process is gone. Failures are logged, never raised.

    Returns:
        Number of files removed
    """
    now = time.time() if now is None else now
    try:
        entries = list(git_dir.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return 0
    except OSError as e:
        logger.warning("Could not scan %s for stale temp indexes: %s", git_dir, e)
        return 0

    removed = 0
    for entry in entries:
        match = _TEMP_INDEX_PATTERN.match(entry.name)
        if not match:
            continue
        try:
            age = now - entry.stat().st_mtime
        except OSError:
            continue  # removed concurrently
        pid = int(match.group(1))
        if age < STALE_INDEX_AGE_SECS or _process_running(pid):
            continue
        try:
            entry.unlink()
            removed += 1
            logger.warning("Cleaned up stale temp index from pid %d (%ds old)", pid, int(age))
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Failed to clean up stale temp index %s: %s", entry.name, e)
    return removed


def _inside_work_tree(cwd: Optional[PathLike]) -> bool:
    try:
        result = run_git(["rev-parse", "--is-inside-work-tree"], cwd=cwd, check=False)
    except GitCommandError:
        return False  # git missing, bad cwd, timeout
    return result.ok and result.out == "true"


def _gitlinks(tree_hash: str, top_level: str) -> List[str]:
    """Paths of submodules recorded in a tree, in tree order."""
    out = run_git(["ls-tree", "-r", "-z", tree_hash], cwd=top_level).stdout
    paths = []
    for entry in out.split("\0"):
        if not entry:
            continue
        meta, _, path = entry.partition("\t")
        if meta.split(" ", 1)[0] == GITLINK_MODE:
            paths.append(path)
    return paths


def _submodule_hashes(tree_hash: str, top_level: str) -> Dict[str, str]:
    """Fingerprints of the checked-out submodules of a tree.

    Submodules that are not checked out, or cannot be hashed, are left
    out with a warning; the rest still count.
    """
    hashes: Dict[str, str] = {}
    if not (Path(top_level) / ".gitmodules").exists():
        return hashes
    for path in _gitlinks(tree_hash, top_level):
        sub_dir = Path(top_level) / path
        if not (sub_dir / ".git").exists():
            continue  # not initialized
        try:
            sub = compute_fingerprint(sub_dir)
        except FingerprintError as e:
            logger.warning("Failed to hash submodule %s: %s", path, e)
            continue
        if sub.is_known:
            hashes[path] = sub.hash
    return hashes


def _composite_hash(tree_hash: str, submodules: Dict[str, str], top_level: str) -> str:
    """Store a blob naming the tree and every submodule fingerprint; return its id."""
    lines = [COMPOSITE_HEADER, f"tree {tree_hash}"]
    lines.extend(f"submodule {submodules[path]}\t{path}" for path in sorted(submodules))
    body = "\n".join(lines) + "\n"
    return run_git(["hash-object", "-w", "--stdin"], cwd=top_level, input=body).out


def compute_fingerprint(cwd: Optional[PathLike] = None) -> TreeFingerprint:
    """Fingerprint the working tree containing cwd.

    Checked-out submodules are fingerprinted recursively. When there are
    any, the hash is the id of a small blob that names the parent tree and
    each submodule fingerprint, so edits inside a submodule change it too.

    Returns:
        TreeFingerprint of the current content, or NOT_APPLICABLE outside a
        git work tree

    Raises:
        FingerprintError: If git fails inside a repository
    """
    if not _inside_work_tree(cwd):
        return NOT_APPLICABLE

    try:
        # absolute paths so subdirectories resolve to the same repository
        git_dir = Path(run_git(["rev-parse", "--absolute-git-dir"], cwd=cwd).out)
        top_level = run_git(["rev-parse", "--show-toplevel"], cwd=cwd).out
    except GitCommandError as e:
        raise FingerprintError(f"Failed to locate repository: {e}") from e

    cleanup_stale_indexes(git_dir)
    temp_index = git_dir / f"{TEMP_INDEX_PREFIX}{os.getpid()}-{uuid.uuid4().hex[:12]}"
    try:
        real_index = git_dir / "index"
        # fresh repositories have no index yet; git add creates the temp one
        if real_index.exists():
            shutil.copyfile(real_index, temp_index)

        env = {"GIT_INDEX_FILE": str(temp_index)}
        # --all from the top level: tracked, untracked, deletions; ignore rules apply
        run_git(["add", "--all"], cwd=top_level, env=env)
        tree_hash = run_git(["write-tree"], cwd=top_level, env=env).out
    except GitCommandError as e:
        raise FingerprintError(f"Failed to calculate tree hash: {e}") from e
    except OSError as e:
        raise FingerprintError(f"Failed to prepare temporary index: {e}") from e
    finally:
        try:
            temp_index.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove temporary index %s: %s", temp_index, e)

    try:
        submodules = _submodule_hashes(tree_hash, top_level)
        if not submodules:
            return TreeFingerprint(hash=tree_hash, tree_hash=tree_hash)
        composite = _composite_hash(tree_hash, submodules, top_level)
    except GitCommandError as e:
        raise FingerprintError(f"Failed to fingerprint submodules: {e}") from e
    return TreeFingerprint(hash=composite, tree_hash=tree_hash, submodule_hashes=submodules)


def head_tree_hash(cwd: Optional[PathLike] = None) -> Optional[str]:
    """Tree id of HEAD, or None when there is no commit (or no repository)."""
    try:
        result = run_git(["rev-parse", "--verify", "--quiet", "HEAD^{tree}"], cwd=cwd, check=False)
    except GitCommandError:
        return None
    return result.out if result.ok and result.out else None


def _parent_tree(fingerprint: str, cwd: Optional[PathLike]) -> str:
    """Tree id behind a fingerprint; composite fingerprints name it on their second line."""
    try:
        result = run_git(["cat-file", "blob", fingerprint], cwd=cwd, check=False)
    except GitCommandError:
        return fingerprint
    if not result.ok or not result.stdout.startswith(COMPOSITE_HEADER + "\n"):
        return fingerprint  # a plain tree id
    tree_line = result.stdout.splitlines()[1]
    return tree_line.split(" ", 1)[1]


def has_working_tree_changes(
    fingerprint: Union[str, TreeFingerprint],
    cwd: Optional[PathLike] = None,
) -> bool:
    """Whether a fingerprint's tree differs from HEAD's tree.

    Only the parent tree is compared; submodule checkouts are not. Without
    a HEAD commit everything counts as uncommitted.
    """
    if isinstance(fingerprint, TreeFingerprint):
        tree_hash = fingerprint.tree_hash or fingerprint.hash
    else:
        tree_hash = _parent_tree(fingerprint, cwd)
    head_tree = head_tree_hash(cwd)
    return head_tree is None or head_tree != tree_hash
