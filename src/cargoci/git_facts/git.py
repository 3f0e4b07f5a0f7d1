# git.py
# Small, focused wrapper around the Git CLI.
# Everything else asks this module instead of calling subprocess("git ...").

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Path:
    """Absolute path to the root of the current Git repository."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str] = None) -> str:
    """Full SHA of the current HEAD commit."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_branch(cwd: Optional[str] = None) -> str:
    """
    Name of the checked-out branch.

    Returns "HEAD" when the repository is in detached-HEAD state.
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)


def is_dirty(cwd: Optional[str] = None) -> bool:
    """
    Whether the working tree has uncommitted changes (modified, staged or
    untracked files).

    A local run clones the repository, so uncommitted changes are not part of it.
    """
    # `git status --porcelain` prints nothing for a clean tree
    return _git(["status", "--porcelain"], cwd=cwd) != ""


def get_remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)
