"""Pytest configuration for tests.

No sys.path hacks - tests import from the installed pinkas package.
Every test that touches git gets its own repository and an isolated HOME,
so the developer's global git config (excludes, hooks, identity) cannot
leak into fingerprints.
"""

import os
import stat
import subprocess
import pytest
from pathlib import Path


def pytest_addoption(parser):
    """Add gated perf test option."""
    parser.addoption(
        "--run-perf",
        action="store_true",
        default=False,
        help="Run heavier concurrency stress tests (gated)."
    )


def pytest_collection_modifyitems(config, items):
    """Skip perf-marked tests unless --run-perf is set."""
    if config.getoption("--run-perf"):
        return
    skip_perf = pytest.mark.skip(reason="perf tests gated; pass --run-perf")
    for item in items:
        if "perf" in item.keywords:
            item.add_marker(skip_perf)


def _make_writable(func, path, exc_info):
    # git object files are read-only, which trips rmtree on Windows
    os.chmod(path, stat.S_IWRITE)
    func(path)


def pytest_sessionfinish(session, exitstatus):
    """Best-effort cleanup for basetemp on Windows without patching pytest internals."""
    if os.name != "nt":
        return
    basetemp = getattr(session.config.option, "basetemp", None)
    if not basetemp:
        return
    basetemp_path = Path(basetemp)
    if not basetemp_path.exists():
        return
    try:
        import shutil
        shutil.rmtree(basetemp_path, onerror=_make_writable)
    except (PermissionError, OSError):
        # If cleanup fails, let it surface as a warning rather than masking errors.
        import warnings
        warnings.warn(f"Could not remove basetemp: {basetemp_path}")


def run_git(repo, *args, input=None):
    """Run git in repo for test setup; returns stripped stdout."""
    proc = subprocess.run(
        ["git", *args],
        cwd=str(repo),
        input=input,
        capture_output=True,
        text=True,
        check=True,
    )
    return proc.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    # never discover a repository above the test directory
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_NOTES_REF"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def git_repo(tmp_path):
    """Fresh repository on branch main with no commits."""
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git(repo, "init", "-q")
    run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo, "config", "user.name", "Test User")
    run_git(repo, "config", "user.email", "test@example.com")
    run_git(repo, "config", "commit.gpgsign", "false")
    run_git(repo, "config", "core.autocrlf", "false")
    return repo


@pytest.fixture
def git(git_repo):
    """git runner bound to the test repository."""
    def _run(*args, input=None):
        return run_git(git_repo, *args, input=input)
    return _run


@pytest.fixture
def make_object(git):
    """Write a blob and return its id; notes can hang off any object."""
    def _make(content: str) -> str:
        return git("hash-object", "-w", "--stdin", input=content)
    return _make


@pytest.fixture
def make_run():
    """Build a RunRecord; steps maps step name -> passed."""
    from pinkas._internal.clock import generate_run_id, utc_now_iso
    from pinkas.kernel.run_record import RunRecord, ValidationResult

    def _make(passed=True, timestamp=None, steps=None, branch="main", **result_fields):
        phases = None
        if steps is not None:
            phases = [{
                "name": "checks",
                "passed": all(steps.values()),
                "duration_secs": 0.5,
                "steps": [{"name": name, "passed": ok} for name, ok in steps.items()],
            }]
        result = ValidationResult.model_validate({"passed": passed, "phases": phases, **result_fields})
        return RunRecord(
            id=generate_run_id(),
            timestamp=timestamp or utc_now_iso(),
            duration_ms=500 if steps is not None else 0,
            passed=passed,
            branch=branch,
            head_commit="none",
            uncommitted_changes=True,
            result=result,
        )
    return _make
