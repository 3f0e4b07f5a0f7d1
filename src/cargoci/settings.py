from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

WORKDIR = ".cargoci/work"
WORKFLOWS_DIR = ".github/workflows"
DEFAULT_WORKFLOW = f"{WORKFLOWS_DIR}/test.yml"


@dataclass(frozen=True)
class Settings:
    """Runner settings; every field can be set from a CARGOCI_* variable."""
    workdir: str = WORKDIR
    max_workers: Optional[int] = None
    git: str = "git"
    rustup: str = "rustup"
    cargo: str = "cargo"
    shell: str = "bash"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        workers = env.get("CARGOCI_MAX_WORKERS")
        return cls(
            workdir=env.get("CARGOCI_WORKDIR", WORKDIR),
            max_workers=int(workers) if workers else None,
            git=env.get("CARGOCI_GIT", "git"),
            rustup=env.get("CARGOCI_RUSTUP", "rustup"),
            cargo=env.get("CARGOCI_CARGO", "cargo"),
            shell=env.get("CARGOCI_SHELL", "bash"),
        )
