"""
actorledger.version — semantic version string and VCS describe helper.

Kept tiny and dependency-free so it can be imported very early.
"""

from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from typing import Dict

__version__ = "0.1.0"


@lru_cache(maxsize=1)
def git_describe() -> str:
    """
    Return a best-effort 'git describe' style string.

    Resolution order:
      1) Environment override ACTORLEDGER_GIT_DESCRIBE.
      2) `git describe --tags --dirty --always`.
      3) Fallback to ``<__version__>+local``.
    """
    override = os.getenv("ACTORLEDGER_GIT_DESCRIBE")
    if override:
        return override.strip()

    try:
        out = subprocess.check_output(
            ["git", "describe", "--tags", "--dirty", "--always"],
            stderr=subprocess.DEVNULL,
        )
        desc = out.decode("utf-8", "replace").strip()
        if desc:
            return desc
    except (OSError, subprocess.CalledProcessError):
        pass

    return f"{__version__}+local"


@lru_cache(maxsize=1)
def version_metadata() -> Dict[str, str]:
    desc = git_describe()
    return {
        "version": __version__,
        "describe": desc,
        "dirty": "true" if desc.endswith("-dirty") else "false",
    }


__all__ = ["__version__", "git_describe", "version_metadata"]
