"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from cargoci.loader import load_pipeline
from cargoci.ui.console import Console, set_console

REPO_ROOT = Path(__file__).resolve().parent.parent
REPO_WORKFLOW = REPO_ROOT / ".github" / "workflows" / "test.yml"


@pytest.fixture(autouse=True)
def fresh_console():
    """Each test starts with a non-debug console."""
    console = Console()
    set_console(console)
    yield console


@pytest.fixture
def repo_pipeline():
    return load_pipeline(REPO_WORKFLOW)
