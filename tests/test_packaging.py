"""
Tests: packaging metadata.

Covers:
    - the declared readme exists and documents the service
"""

from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


def test_readme_is_the_service_readme():
    project = tomllib.loads((ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]
    readme = ROOT / project["readme"]

    assert readme.name == "README.md"
    assert readme.read_text(encoding="utf-8").startswith("# Project Workspace Service")
