"""Shared fixtures: a project directory laid out under a fake home."""

from __future__ import annotations

from pathlib import Path

import pytest

from reef.core.locator import detect


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path.resolve() / "home"
    path.mkdir()
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """``<tmp>/p/proj`` with a couple of files and a nested directory."""
    base = tmp_path.resolve() / "p" / "proj"
    (base / "src").mkdir(parents=True)
    (base / "src" / "a.js").write_text("console.log('a')\n")
    (base / "notes.md").write_text("# notes\n")
    (base / "data").mkdir()
    (base / "data" / "big.csv").write_text("x,y\n1,2\n")
    return base


@pytest.fixture
def sibling_twin(project: Path) -> Path:
    twin = project.parent / (project.name + "-reef")
    twin.mkdir()
    return twin


@pytest.fixture
def pair(project: Path, sibling_twin: Path, home: Path):
    return detect(project, "-reef", home=home)
