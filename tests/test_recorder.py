"""Tests for recording validation runs and the stability guard."""

import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

from pinkas import (
    NOT_APPLICABLE,
    HistoryConfig,
    RecordCode,
    check_stability,
    compute_fingerprint,
    detect_flakiness,
    most_recent,
    read_history,
    record_run,
)
from pinkas.config import NotesConfig
from pinkas.kernel.run_record import ValidationResult


def _write(repo, name, text):
    (repo / name).write_text(text, encoding="utf-8")


def _outcome(passed, step_output=None):
    return {
        "passed": passed,
        "phases": [{
            "name": "test",
            "passed": passed,
            "duration_secs": 1.25,
            "steps": [{"name": "pytest", "passed": passed, "duration_secs": 1.25, "output": step_output}],
        }],
        "failed_step": None if passed else "pytest",
        "failed_step_output": None if passed else step_output,
    }


@pytest.fixture
def dirty_repo(git_repo):
    _write(git_repo, "app.py", "print('v1')\n")
    return git_repo


class TestCheckStability:
    def test_unchanged_tree_is_stable(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        result = check_stability(before, dirty_repo)
        assert result.stable
        assert result.fingerprint_before == result.fingerprint_after == before.hash

    def test_edit_during_run_is_unstable(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        _write(dirty_repo, "app.py", "print('v2')\n")
        result = check_stability(before, dirty_repo)
        assert not result.stable
        assert result.fingerprint_after != before.hash

    def test_accepts_plain_hash(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        assert check_stability(before.hash, dirty_repo).stable

    def test_sentinel_is_never_stable(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        result = check_stability(NOT_APPLICABLE, plain)
        assert not result.stable
        assert result.fingerprint_before == result.fingerprint_after == "unknown"


class TestRecordRun:
    def test_records_run_fields(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        result = record_run(before, _outcome(True), cwd=dirty_repo)

        assert result.recorded
        assert result.code == RecordCode.RECORDED
        assert result.fingerprint == before.hash

        run = most_recent(read_history(before, cwd=dirty_repo))
        assert run.passed is True
        assert run.id.startswith("run-")
        assert run.branch == "main"
        assert run.head_commit == "none"
        assert run.uncommitted_changes is True
        assert run.duration_ms == 1250
        assert run.result.phases[0].steps[0].name == "pytest"

    def test_clean_committed_tree(self, dirty_repo, git):
        git("add", "--all")
        git("commit", "-q", "-m", "init")
        before = compute_fingerprint(dirty_repo)
        record_run(before, _outcome(True), cwd=dirty_repo)

        run = most_recent(read_history(before, cwd=dirty_repo))
        assert run.head_commit == git("rev-parse", "HEAD")
        assert run.uncommitted_changes is False

    def test_accepts_model_outcome(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        outcome = ValidationResult(passed=False, summary="1 failed")
        assert record_run(before, outcome, cwd=dirty_repo).recorded
        run = most_recent(read_history(before, cwd=dirty_repo))
        assert run.passed is False
        assert run.result.summary == "1 failed"

    def test_runner_specific_fields_survive(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        record_run(before, {"passed": True, "runner": "make check"}, cwd=dirty_repo)
        run = most_recent(read_history(before, cwd=dirty_repo))
        assert run.result.model_dump()["runner"] == "make check"

    def test_output_is_truncated(self, dirty_repo):
        config = HistoryConfig(notes=NotesConfig(max_output_bytes=100))
        before = compute_fingerprint(dirty_repo)
        record_run(before, _outcome(False, step_output="x" * 5000), config=config, cwd=dirty_repo)

        run = most_recent(read_history(before, config=config, cwd=dirty_repo))
        assert run.result.failed_step_output.startswith("x" * 100)
        assert "[... truncated 4900 bytes]" in run.result.failed_step_output
        assert "[... truncated" in run.result.phases[0].steps[0].output

    def test_every_call_appends(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        first = record_run(before, _outcome(True), cwd=dirty_repo)
        second = record_run(before, _outcome(True), cwd=dirty_repo)
        assert first.recorded and second.recorded

        log = read_history(before, cwd=dirty_repo)
        assert len(log.runs) == 2
        assert log.runs[0].id != log.runs[1].id

    def test_log_is_capped(self, dirty_repo):
        config = HistoryConfig(notes=NotesConfig(max_runs_per_log=3))
        before = compute_fingerprint(dirty_repo)
        for _ in range(5):
            record_run(before, _outcome(True), config=config, cwd=dirty_repo)
        assert len(read_history(before, config=config, cwd=dirty_repo).runs) == 3

    def test_not_applicable_outside_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        result = record_run(compute_fingerprint(plain), _outcome(True), cwd=plain)
        assert not result.recorded
        assert result.code == RecordCode.NOT_APPLICABLE

    def test_disabled(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        result = record_run(before, _outcome(True), config=HistoryConfig(enabled=False), cwd=dirty_repo)
        assert result.code == RecordCode.DISABLED
        assert read_history(before, cwd=dirty_repo) is None

    def test_invalid_outcome(self, dirty_repo):
        before = compute_fingerprint(dirty_repo)
        result = record_run(before, {"phases": "nope"}, cwd=dirty_repo)
        assert not result.recorded
        assert result.code == RecordCode.INVALID_INPUT
        assert read_history(before, cwd=dirty_repo) is None

    def test_custom_namespace(self, dirty_repo, git):
        config = HistoryConfig(namespace="ci")
        before = compute_fingerprint(dirty_repo)
        record_run(before, _outcome(True), config=config, cwd=dirty_repo)
        assert git("for-each-ref", "--format=%(refname)", "refs/notes/ci/") == "refs/notes/ci/validate"
        assert read_history(before, cwd=dirty_repo) is None


def test_pass_fail_pass_on_one_tree(dirty_repo):
    """Three runs against an unchanged tree: all kept, last one wins, flagged flaky."""
    before = compute_fingerprint(dirty_repo)
    for passed in (True, False, True):
        assert check_stability(before, dirty_repo).stable
        assert record_run(before, _outcome(passed), cwd=dirty_repo).recorded

    log = read_history(before, cwd=dirty_repo)
    assert [run.passed for run in log.runs] == [True, False, True]
    assert most_recent(log).passed is True

    report = detect_flakiness(log)
    assert report.flaky
    assert report.passed_count == 2
    assert report.failed_count == 1
    assert [step.name for step in report.flaky_steps] == ["pytest"]


def test_concurrent_recorders_lose_nothing(dirty_repo):
    """Parallel validations of the same tree each leave exactly one record."""
    writers = 4
    before = compute_fingerprint(dirty_repo)
    config = HistoryConfig(notes=NotesConfig(max_append_attempts=20))

    with ThreadPoolExecutor(max_workers=writers) as pool:
        results = list(pool.map(
            lambda i: record_run(before, _outcome(i % 2 == 0), config=config, cwd=dirty_repo),
            range(writers),
        ))

    assert all(r.recorded for r in results), [r.reason for r in results]
    log = read_history(before, config=config, cwd=dirty_repo)
    assert len(log.runs) == writers
    assert len({run.id for run in log.runs}) == writers


def test_fresh_repository_scenario(git_repo, git):
    """Fresh repo -> commit -> unstaged edit -> pass, fail, pass on the edited tree."""
    assert compute_fingerprint(git_repo).is_known

    _write(git_repo, "a.txt", "v1")
    git("add", "a.txt")
    git("commit", "-q", "-m", "v1")
    f1 = compute_fingerprint(git_repo)

    _write(git_repo, "a.txt", "v2")
    f2 = compute_fingerprint(git_repo)
    assert f2 != f1

    for passed in (True, False, True):
        assert record_run(f2, {"passed": passed}, cwd=git_repo).recorded

    log = read_history(f2, cwd=git_repo)
    assert len(log.runs) == 3
    assert most_recent(log).passed is True
    assert detect_flakiness(log).flaky is True
    assert read_history(f1, cwd=git_repo) is None


def test_unstable_run_is_not_recorded_by_caller(dirty_repo):
    """The documented caller flow skips recording when the tree moved."""
    before = compute_fingerprint(dirty_repo)
    _write(dirty_repo, "app.py", "print('changed mid-run')\n")
    if check_stability(before, dirty_repo).stable:
        record_run(before, _outcome(True), cwd=dirty_repo)
    assert read_history(before, cwd=dirty_repo) is None


_RECORD_SCRIPT = """
import sys
from pinkas import HistoryConfig, record_run
from pinkas.config import NotesConfig

config = HistoryConfig(notes=NotesConfig(max_append_attempts=30))
result = record_run(sys.argv[1], {"passed": sys.argv[2] == "1"}, config=config, cwd=sys.argv[3])
sys.exit(0 if result.recorded else 1)
"""


def test_concurrent_processes_lose_nothing(dirty_repo):
    writers = 4
    before = compute_fingerprint(dirty_repo)
    procs = [
        subprocess.Popen(
            [sys.executable, "-c", _RECORD_SCRIPT, before.hash, str(i % 2), str(dirty_repo)],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        for i in range(writers)
    ]
    outputs = [proc.communicate(timeout=120) for proc in procs]

    assert [proc.returncode for proc in procs] == [0] * writers, outputs
    log = read_history(before, cwd=dirty_repo)
    assert len(log.runs) == writers
    assert detect_flakiness(log).flaky
