"""Packaging regression tests.

Tests that verify the source layout and the installed package.
"""

from pathlib import Path


def test_source_layout():
    """src/ layout with the expected subpackages."""
    here = Path(__file__).resolve().parent
    repo_root = here.parent
    src_pinkas = repo_root / "src" / "pinkas"

    assert src_pinkas.exists(), "pinkas package should exist in src/"
    for sub in ("_internal", "kernel", "history"):
        assert (src_pinkas / sub).is_dir(), f"pinkas.{sub} should exist"
    assert not (repo_root / "pinkas").exists(), "package must not live at the repo root"


def test_import_boundary():
    """Installed package imports with its subpackages."""
    import pinkas
    import pinkas.kernel  # noqa: F401
    import pinkas.history  # noqa: F401
    import pinkas._internal  # noqa: F401

    # Check version: in dev mode it's "dev", in installed mode it's "1.0.0"
    assert pinkas.__version__ in ("1.0.0", "dev")


def test_pyproject_declares_runtime_dependencies():
    repo_root = Path(__file__).resolve().parents[1]
    pyproject = (repo_root / "pyproject.toml").read_text(encoding="utf-8")
    assert 'name = "pinkas"' in pyproject
    assert "pydantic" in pyproject
